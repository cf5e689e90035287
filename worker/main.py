"""
WorkerPool: 알림 잡 실행 워커풀 모듈

notification_jobs 테이블에서 점유 가능한 잡을 폴링하여 실행합니다.

실행 방법:
    python -m worker.main
    python main.py worker
"""

import asyncio
import logging
import signal
from dataclasses import dataclass, field

from common.exception import StoreUnavailableError
from worker.base import load_handlers
from worker.executor import Executor
from worker.model import Job, QueueConfig
from worker.queue import JobQueue, new_lock_owner

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """워커풀 설정"""
    database: str = "default"  # job 관리용 DB (database.yaml에 정의된 이름)
    pool_size: int = 5
    poll_interval_seconds: float = 5
    shutdown_timeout_seconds: float = 30
    handler_timeout_seconds: float | None = None
    job_types: list[str] = field(default_factory=list)  # 비어 있으면 전체 type 처리


class WorkerPool:
    """
    잡 실행 워커풀

    가용 워커 수만큼 잡을 점유하여 동시에 실행합니다.
    """

    def __init__(self, config: WorkerConfig, queue: JobQueue | None = None):
        self._config = config
        self._queue = queue or JobQueue(QueueConfig(database=config.database))
        self._lock_owner = new_lock_owner()
        self._executor = Executor(self._queue, self._lock_owner, config.handler_timeout_seconds)
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._running_tasks: set[asyncio.Task] = set()

    async def start(self) -> None:
        """워커풀 메인 루프 시작"""
        if self._running:
            logger.warning("WorkerPool is already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()

        logger.info(
            f"WorkerPool started (lock_owner={self._lock_owner}, pool_size={self._config.pool_size}, "
            f"poll_interval={self._config.poll_interval_seconds}s)"
        )

        try:
            await self._main_loop()
        except asyncio.CancelledError:
            logger.info("WorkerPool cancelled")
        except Exception as e:
            logger.error(f"WorkerPool error: {e}", exc_info=True)
            raise
        finally:
            await self._wait_running_tasks()
            self._running = False
            logger.info("WorkerPool stopped")

    async def stop(self) -> None:
        """WorkerPool graceful shutdown"""
        if not self._running:
            return

        logger.info("Stopping WorkerPool...")
        self._running = False
        if self._stop_event:
            self._stop_event.set()

    async def _main_loop(self) -> None:
        """메인 폴링 루프"""
        while self._running:
            try:
                await self._poll_and_assign()
            except StoreUnavailableError as e:
                logger.warning(f"Store unavailable while polling: {e}")

            # 다음 폴링까지 대기 (stop 시 즉시 종료)
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._config.poll_interval_seconds
                )
                break
            except asyncio.TimeoutError:
                pass

    async def _poll_and_assign(self) -> int:
        """
        가용 워커 수만큼 잡 점유 후 실행 태스크 생성

        Returns:
            이번 폴링에서 점유한 잡 수
        """
        available_workers = self._config.pool_size - len(self._running_tasks)
        if available_workers <= 0:
            logger.debug("No available workers, skipping poll")
            return 0

        claimed = 0
        for _ in range(available_workers):
            job = await self._claim()
            if job is None:
                break
            claimed += 1
            task = asyncio.create_task(self._execute_job(job))
            self._running_tasks.add(task)
            task.add_done_callback(self._on_task_done)

        if claimed:
            logger.debug(f"Claimed {claimed} job(s)")
        else:
            logger.debug("No claimable jobs found")
        return claimed

    async def _claim(self) -> Job | None:
        if not self._config.job_types:
            return await self._queue.claim_next(self._lock_owner)
        for job_type in self._config.job_types:
            job = await self._queue.claim_next(self._lock_owner, job_type=job_type)
            if job is not None:
                return job
        return None

    async def _execute_job(self, job: Job) -> None:
        """잡 실행 (워커 태스크)"""
        try:
            await self._executor.execute(job)
        except StoreUnavailableError as e:
            # 결과를 기록하지 못한 잡은 락이 stale 되면 다시 점유됨
            logger.error(f"Could not record result for job {job.id}: {e}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        """태스크 완료 콜백"""
        self._running_tasks.discard(task)
        if not task.cancelled() and task.exception():
            logger.error(f"Task exception: {task.exception()}")

    async def _wait_running_tasks(self) -> None:
        """실행 중인 태스크 완료 대기 (graceful shutdown)"""
        if not self._running_tasks:
            return

        logger.info(f"Waiting for {len(self._running_tasks)} running tasks...")

        try:
            await asyncio.wait_for(
                asyncio.gather(*self._running_tasks, return_exceptions=True),
                timeout=self._config.shutdown_timeout_seconds
            )
            logger.info("All tasks completed")
        except asyncio.TimeoutError:
            logger.warning(
                f"Shutdown timeout ({self._config.shutdown_timeout_seconds}s), "
                f"{len(self._running_tasks)} tasks still running"
            )
            for task in self._running_tasks:
                task.cancel()

    @property
    def is_running(self) -> bool:
        """실행 중 여부"""
        return self._running

    @property
    def running_task_count(self) -> int:
        """실행 중인 태스크 수"""
        return len(self._running_tasks)

    @property
    def lock_owner(self) -> str:
        return self._lock_owner


if __name__ == "__main__":
    from common.config import load_config
    from common.logging import setup_logging
    from database.registry import DatabaseRegistry

    async def main():
        config = load_config("database", "worker", "admin")
        setup_logging(**config.get("logging", {}))

        load_handlers()

        worker_config = WorkerConfig(**config.get("worker", {}))
        queue_config = QueueConfig(**{**config.get("queue", {}), "database": worker_config.database})

        await DatabaseRegistry.init_from_config(config, [worker_config.database])

        worker_pool = WorkerPool(worker_config, JobQueue(queue_config))

        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            asyncio.create_task(worker_pool.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            logger.info("Starting WorkerPool...")
            await worker_pool.start()
        finally:
            await DatabaseRegistry.close_all()

    asyncio.run(main())
