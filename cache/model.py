"""캐시 모델 정의"""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from common.clock import from_db_time


class CacheEntry(BaseModel):
    """캐시 엔트리 엔티티 (api_cache)"""
    key: str
    key_parts: dict[str, Any] = Field(default_factory=dict)
    payload: Any = None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    @classmethod
    def from_row(cls, row: Any) -> "CacheEntry":
        row_dict = dict(row)
        return cls(
            key=row_dict['key'],
            key_parts=json.loads(row_dict['key_parts'] or '{}'),
            payload=json.loads(row_dict['payload']),
            expires_at=from_db_time(row_dict['expires_at']),
            created_at=from_db_time(row_dict['created_at']),
            updated_at=from_db_time(row_dict['updated_at']),
        )


class CacheConfig(BaseModel):
    """ResponseCache 설정"""
    database: str = Field(default="default", description="database.yaml에 정의된 DB 이름")
    default_ttl_seconds: int = Field(default=60, gt=0)
    sweep_interval_seconds: float = Field(default=300, gt=0)


class CachePolicy(BaseModel):
    """엔드포인트별 캐시 정책"""
    ttl_seconds: int = Field(gt=0)
    public: bool = True              # False면 호출자 범위(scope)별로 분리
    cache_control: str | None = None  # 응답 Cache-Control 헤더
