"""Admin API 모델 패키지"""

from admin.api.model.common import (
    PageParams,
    ErrorResponse,
    ErrorDetail,
)
from admin.api.model.job import (
    JobResponse,
    JobListResponse,
    JobCreateRequest,
    JobCreateResponse,
    JobStatsResponse,
    ProcessedJob,
    ProcessResponse,
)
from admin.api.model.cache import (
    CacheStatsResponse,
    CacheInvalidateRequest,
    CacheDeleteResponse,
)

__all__ = [
    'PageParams',
    'ErrorResponse',
    'ErrorDetail',
    'JobResponse',
    'JobListResponse',
    'JobCreateRequest',
    'JobCreateResponse',
    'JobStatsResponse',
    'ProcessedJob',
    'ProcessResponse',
    'CacheStatsResponse',
    'CacheInvalidateRequest',
    'CacheDeleteResponse',
]
