"""Admin API 핸들러 패키지"""

from admin.api.handler.cache import CacheHandler
from admin.api.handler.job import JobHandler

__all__ = ['CacheHandler', 'JobHandler']
