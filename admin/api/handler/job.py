"""알림 잡 관리 비즈니스 로직 핸들러"""

import logging

from admin.api.model.common import PageParams
from admin.api.model.job import (
    JobCreateRequest,
    JobResponse,
    JobStatsResponse,
    ProcessedJob,
    ProcessResponse,
)
from common.clock import utcnow
from worker.executor import Executor
from worker.model import JobStatus
from worker.queue import JobQueue

logger = logging.getLogger(__name__)


class JobHandler:
    """알림 잡 핸들러"""

    def __init__(self, queue: JobQueue, executor: Executor):
        self._queue = queue
        self._executor = executor

    @property
    def queue(self) -> JobQueue:
        return self._queue

    async def get_list(
        self,
        params: PageParams,
        status: JobStatus | None = None,
        job_type: str | None = None,
    ) -> tuple[list[JobResponse], int]:
        """잡 목록 조회"""
        jobs, total = await self._queue.get_list(
            status=status, job_type=job_type, limit=params.size, offset=params.offset
        )
        return [JobResponse.from_job(job) for job in jobs], total

    async def get_by_id(self, job_id: str) -> JobResponse:
        return JobResponse.from_job(await self._queue.get(job_id))

    async def create(self, request: JobCreateRequest) -> str:
        """잡 등록"""
        return await self._queue.enqueue(
            request.type,
            request.payload,
            max_attempts=request.max_attempts,
            not_before=request.not_before,
        )

    async def reset(self, job_id: str) -> JobResponse:
        """FAILED 잡 수동 재시도"""
        job = await self._queue.reset(job_id)
        logger.info(f"Job reset by operator: id={job_id}")
        return JobResponse.from_job(job)

    async def stats(self) -> dict:
        """상태별 잡 건수 (응답 캐시 대상)"""
        counts = await self._queue.counts()
        return JobStatsResponse(
            counts=counts,
            total=sum(counts.values()),
            generated_at=utcnow(),
        ).model_dump(mode="json")

    async def process_one(self) -> ProcessResponse:
        """
        잡 하나 점유 후 처리 (외부 스케줄러 트리거용)

        핸들러 실패는 재시도 상태로 기록되며 요청 자체는 성공으로 응답합니다.
        """
        claimed = await self._executor.run_once()
        if claimed is None:
            return ProcessResponse(message="No pending jobs to process", timestamp=utcnow())

        job = await self._queue.get(claimed.id)
        if job.status == JobStatus.SENT:
            message = "Job processed and sent"
        elif job.status == JobStatus.FAILED:
            message = f"Job failed permanently after {job.attempts} attempts"
        else:
            message = f"Job failed, retry scheduled at {job.next_attempt_at.isoformat()}"

        return ProcessResponse(
            message=message,
            job=ProcessedJob(
                id=job.id,
                type=job.type,
                status=job.status.value,
                attempts=job.attempts,
                max_attempts=job.max_attempts,
            ),
            timestamp=utcnow(),
        )
