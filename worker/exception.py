"""
Worker(JobQueue) 관련 예외 클래스 정의
"""

from common.exception import NotiqError


class WorkerError(NotiqError):
    """Worker 기본 예외"""
    pass


class HandlerNotFoundError(WorkerError):
    """핸들러를 찾을 수 없음"""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Handler not found: {name}")


class HandlerFailure(WorkerError):
    """핸들러가 실패 결과를 반환함 (재시도 상태로 변환되며 큐 밖으로 전파되지 않음)"""
    def __init__(self, job_id: str, error: str | None = None):
        self.job_id = job_id
        super().__init__(error or f"Handler reported failure: job_id={job_id}")


class OwnershipLostError(WorkerError):
    """잡의 락을 더 이상 소유하지 않음 (stale 판정 후 다른 워커가 재점유)"""
    def __init__(self, job_id: str, lock_owner: str):
        self.job_id = job_id
        self.lock_owner = lock_owner
        super().__init__(f"Lock no longer owned: job_id={job_id}, lock_owner={lock_owner}")


class JobNotFoundError(WorkerError):
    """잡을 찾을 수 없음"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobStatusError(WorkerError):
    """현재 상태에서 허용되지 않는 작업 (FAILED가 아닌 잡 reset 등)"""
    def __init__(self, job_id: str, current_status: str, expected: str = "FAILED"):
        self.job_id = job_id
        self.current_status = current_status
        super().__init__(
            f"Cannot reset job with status '{current_status}'. "
            f"Only {expected} jobs can be reset."
        )
