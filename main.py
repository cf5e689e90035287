"""
notiq 통합 진입점

Worker, ExpirySweeper, Admin API를 한 번에 실행합니다.

사용법:
    python main.py                 # 전체 실행
    python main.py worker          # Worker만
    python main.py sweeper         # 캐시 만료 정리만
    python main.py admin           # Admin API만
    python main.py worker sweeper  # 복수 선택
"""

import sys
import os

# Windows 인코딩 설정 (cp949 -> UTF-8)
if sys.platform == "win32":
    os.environ["PYTHONUTF8"] = "1"

import asyncio
import signal
import logging

from common.config import load_config
from common.logging import setup_logging
from database.registry import DatabaseRegistry

logger = logging.getLogger(__name__)

VALID_MODULES = ("worker", "sweeper", "admin")


async def run_worker(config: dict, stop_event: asyncio.Event):
    """Worker 실행"""
    from worker.base import load_handlers
    from worker.main import WorkerPool, WorkerConfig
    from worker.model import QueueConfig
    from worker.queue import JobQueue

    load_handlers()
    worker_config = WorkerConfig(**config.get("worker", {}))
    queue_config = QueueConfig(**{**config.get("queue", {}), "database": worker_config.database})
    worker_pool = WorkerPool(worker_config, JobQueue(queue_config))

    async def wait_stop():
        await stop_event.wait()
        await worker_pool.stop()

    asyncio.create_task(wait_stop())
    await worker_pool.start()


async def run_sweeper(config: dict, stop_event: asyncio.Event):
    """ExpirySweeper 실행"""
    from cache.main import ResponseCache
    from cache.model import CacheConfig
    from cache.sweeper import ExpirySweeper

    sweeper = ExpirySweeper(ResponseCache(CacheConfig(**config.get("cache", {}))))

    async def wait_stop():
        await stop_event.wait()
        await sweeper.stop()

    asyncio.create_task(wait_stop())
    await sweeper.start()


async def run_admin(config: dict, stop_event: asyncio.Event):
    """Admin API 실행"""
    import uvicorn
    from admin.main import create_app

    admin_config = config.get("admin", {})
    uv_config = uvicorn.Config(
        create_app(config),
        host=admin_config.get("host", "0.0.0.0"),
        port=admin_config.get("port", 8080),
        log_level="info",
    )
    server = uvicorn.Server(uv_config)

    async def wait_stop():
        await stop_event.wait()
        server.should_exit = True

    asyncio.create_task(wait_stop())
    await server.serve()


async def main(modules: list[str]):
    """메인 함수"""
    config = load_config()

    # 로깅 설정
    setup_logging(**config.get("logging", {}))

    # 필요한 DB 목록 수집
    db_names = set()
    if "worker" in modules:
        db_names.add(config.get("worker", {}).get("database", "default"))
    if "sweeper" in modules:
        db_names.add(config.get("cache", {}).get("database", "default"))
    if "admin" in modules:
        db_names.add(config.get("admin", {}).get("database", "default"))

    # DB 초기화
    await DatabaseRegistry.init_from_config(config, list(db_names))

    # 종료 이벤트
    stop_event = asyncio.Event()

    # 시그널 핸들러
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    # Windows는 add_signal_handler를 지원하지 않음
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    # 태스크 생성
    runners = {"worker": run_worker, "sweeper": run_sweeper, "admin": run_admin}
    tasks = []
    for module in modules:
        tasks.append(asyncio.create_task(runners[module](config, stop_event)))
        logger.info(f"{module} started")

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Tasks cancelled")
    finally:
        await DatabaseRegistry.close_all()
        logger.info("All modules stopped")


if __name__ == "__main__":
    # 인자 파싱
    args = sys.argv[1:]

    if args:
        modules = [m for m in args if m in VALID_MODULES]
        if not modules:
            print(f"Usage: python main.py [{'] ['.join(VALID_MODULES)}]")
            sys.exit(1)
    else:
        modules = list(VALID_MODULES)

    print(f"Starting notiq: {', '.join(modules)}")
    try:
        asyncio.run(main(modules))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
