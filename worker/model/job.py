"""
알림 잡 모델 정의
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from common.clock import from_db_time

MIN_ATTEMPTS = 1
MAX_ATTEMPTS = 20


class JobStatus(str, Enum):
    """잡 상태"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SENT = "SENT"        # 종료 (성공)
    FAILED = "FAILED"    # 종료 (재시도 소진)


class Job(BaseModel):
    """알림 잡 엔티티 (notification_jobs)"""
    id: str
    type: str
    status: JobStatus = JobStatus.PENDING
    payload: Any = None
    attempts: int = 0
    max_attempts: int = 5
    next_attempt_at: datetime
    locked_at: datetime | None = None
    lock_owner: str | None = None
    last_error: str | None = None
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SENT, JobStatus.FAILED)

    @classmethod
    def from_row(cls, row: Any) -> "Job":
        """DB row -> Job (payload는 JSON 역직렬화만 하고 해석하지 않음)"""
        row_dict = dict(row)
        return cls(
            id=row_dict['id'],
            type=row_dict['type'],
            status=JobStatus(row_dict['status']),
            payload=json.loads(row_dict['payload']) if row_dict.get('payload') else None,
            attempts=row_dict['attempts'],
            max_attempts=row_dict['max_attempts'],
            next_attempt_at=from_db_time(row_dict['next_attempt_at']),
            locked_at=from_db_time(row_dict.get('locked_at')),
            lock_owner=row_dict.get('lock_owner'),
            last_error=row_dict.get('last_error'),
            sent_at=from_db_time(row_dict.get('sent_at')),
            created_at=from_db_time(row_dict['created_at']),
            updated_at=from_db_time(row_dict['updated_at']),
        )


class QueueConfig(BaseModel):
    """JobQueue 설정"""
    database: str = Field(default="default", description="database.yaml에 정의된 DB 이름")
    default_max_attempts: int = Field(default=5, ge=MIN_ATTEMPTS, le=MAX_ATTEMPTS)
    base_delay_seconds: float = Field(default=60.0, gt=0)
    max_delay_seconds: float = Field(default=7200.0, gt=0)
    jitter_seconds: float = Field(default=5.0, ge=0)
    stale_lock_seconds: float = Field(default=600.0, gt=0, description="PROCESSING 잡을 버려진 것으로 보는 기준")
    max_error_length: int = Field(default=500, ge=1)
