"""
잡 실행기 모듈

점유(claim)한 잡 하나를 핸들러로 처리하고 결과에 따라 상태를 반영합니다.
핸들러 실패는 재시도 상태로 변환되며 실행기 밖으로 전파되지 않습니다.
"""

import asyncio
import logging

from worker.base import get_handler
from worker.exception import HandlerFailure, HandlerNotFoundError
from worker.model import Job
from worker.queue import JobQueue

logger = logging.getLogger(__name__)


class Executor:
    """잡 실행기"""

    def __init__(self, queue: JobQueue, lock_owner: str, handler_timeout_seconds: float | None = None):
        """
        Args:
            queue: 잡 큐
            lock_owner: 점유 시 사용하는 락 소유자 접두어 (완료 처리는 job.lock_owner 토큰으로)
            handler_timeout_seconds: 핸들러 타임아웃 (None이면 제한 없음)
        """
        self._queue = queue
        self._lock_owner = lock_owner
        self._handler_timeout = handler_timeout_seconds

    @property
    def lock_owner(self) -> str:
        return self._lock_owner

    async def run_once(self, job_type: str | None = None) -> Job | None:
        """
        잡 하나 점유 후 실행

        Returns:
            처리한 잡 (점유 시점 상태), 점유할 잡이 없으면 None
        """
        job = await self._queue.claim_next(self._lock_owner, job_type=job_type)
        if job is None:
            return None
        await self.execute(job)
        return job

    async def execute(self, job: Job) -> bool:
        """
        점유한 잡 실행

        Returns:
            bool: 실행 성공 여부
        """
        logger.info(f"Starting job execution: id={job.id}, type={job.type}")

        try:
            handler = get_handler(job.type)
        except HandlerNotFoundError as e:
            logger.error(f"Handler not found: {job.type}")
            await self._queue.complete_failure(job.id, job.lock_owner, str(e))
            return False

        try:
            if self._handler_timeout:
                result = await asyncio.wait_for(handler.execute(job), timeout=self._handler_timeout)
            else:
                result = await handler.execute(job)

            if result is not None and not result.success:
                raise HandlerFailure(job.id, result.error)

        except asyncio.TimeoutError:
            logger.error(f"Job execution timed out: id={job.id}")
            await self._queue.complete_failure(
                job.id, job.lock_owner, f"Handler timed out after {self._handler_timeout}s"
            )
            return False

        except Exception as e:
            logger.error(f"Job execution failed: id={job.id}, error={e}")
            await self._queue.complete_failure(job.id, job.lock_owner, str(e) or type(e).__name__)
            return False

        await self._queue.complete_success(job.id, job.lock_owner)
        logger.info(f"Job execution completed: id={job.id}")
        return True
