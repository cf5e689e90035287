"""알림 잡 관련 API 모델 정의"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from worker.model import Job, JobStatus


class JobResponse(BaseModel):
    """잡 응답 모델"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    status: JobStatus
    payload: Any = None
    attempts: int = 0
    max_attempts: int
    next_attempt_at: datetime
    locked_at: datetime | None = None
    lock_owner: str | None = None
    last_error: str | None = None
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(**job.model_dump())


class JobListResponse(BaseModel):
    """잡 목록 응답"""
    items: list[JobResponse]
    total: int
    page: int
    size: int
    pages: int


class JobCreateRequest(BaseModel):
    """잡 등록 요청 (범위 검증은 큐에서 수행)"""
    type: str = Field(..., min_length=1, description="잡 type")
    payload: Any = Field(default=None, description="핸들러에 전달할 데이터")
    max_attempts: int | None = Field(default=None, description="최대 시도 횟수 (1~20)")
    not_before: datetime | None = Field(default=None, description="이 시각 이후 처리")


class JobCreateResponse(BaseModel):
    id: str


class JobStatsResponse(BaseModel):
    """상태별 잡 건수"""
    counts: dict[str, int]
    total: int
    generated_at: datetime


class ProcessedJob(BaseModel):
    id: str
    type: str
    status: str
    attempts: int
    max_attempts: int


class ProcessResponse(BaseModel):
    """트리거 실행 결과"""
    success: bool = True
    message: str
    job: ProcessedJob | None = None
    timestamp: datetime
