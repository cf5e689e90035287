"""캐시 관리 API 모델 정의"""

from typing import Any

from pydantic import BaseModel, Field


class CacheStatsResponse(BaseModel):
    total: int
    live: int
    expired: int


class CacheInvalidateRequest(BaseModel):
    """캐시 무효화 요청"""
    path_prefix: str = Field(..., min_length=1, description="key_parts.path 접두사")
    query: dict[str, Any] = Field(default_factory=dict, description="일치해야 하는 쿼리 값")


class CacheDeleteResponse(BaseModel):
    deleted: int
