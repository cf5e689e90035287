"""
ExpirySweeper: 만료 캐시 엔트리 정리 태스크

sweep_interval_seconds 마다 purge_expired를 호출합니다.
조회 시 만료 여부를 항상 검사하므로, 정리가 늦어져도 정합성에는 영향이 없습니다.

실행 방법:
    python -m cache.sweeper
    python main.py sweeper
"""

import asyncio
import logging
import signal

from cache.main import ResponseCache
from common.exception import StoreUnavailableError
from database import DatabaseError

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """만료 엔트리 주기적 삭제"""

    def __init__(self, cache: ResponseCache, interval_seconds: float | None = None):
        self._cache = cache
        self._interval = interval_seconds or cache.config.sweep_interval_seconds
        self._running = False
        self._stop_event: asyncio.Event | None = None

    async def start(self) -> None:
        """정리 루프 시작"""
        if self._running:
            logger.warning("ExpirySweeper is already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        logger.info(f"ExpirySweeper started (interval={self._interval}s)")

        try:
            while self._running:
                await self.sweep_once()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                    break
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("ExpirySweeper cancelled")
        finally:
            self._running = False
            logger.info("ExpirySweeper stopped")

    async def stop(self) -> None:
        if not self._running:
            return

        logger.info("Stopping ExpirySweeper...")
        self._running = False
        if self._stop_event:
            self._stop_event.set()

    async def sweep_once(self) -> int:
        """
        한 번 정리

        Returns:
            삭제된 엔트리 수 (저장소 오류 시 0)
        """
        try:
            return await self._cache.purge_expired()
        except (DatabaseError, StoreUnavailableError) as e:
            logger.warning(f"Cache sweep failed: {e}")
            return 0

    @property
    def is_running(self) -> bool:
        return self._running


if __name__ == "__main__":
    from cache.model import CacheConfig
    from common.config import load_config
    from common.logging import setup_logging
    from database.registry import DatabaseRegistry

    async def main():
        config = load_config("database", "cache", "admin")
        setup_logging(**config.get("logging", {}))

        cache_config = CacheConfig(**config.get("cache", {}))
        await DatabaseRegistry.init_from_config(config, [cache_config.database])

        sweeper = ExpirySweeper(ResponseCache(cache_config))

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(sweeper.stop()))

        try:
            await sweeper.start()
        finally:
            await DatabaseRegistry.close_all()

    asyncio.run(main())
