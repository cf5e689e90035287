"""캐시 관리 핸들러"""

import logging

from admin.api.model.cache import CacheDeleteResponse, CacheInvalidateRequest, CacheStatsResponse
from cache.main import ResponseCache

logger = logging.getLogger(__name__)


class CacheHandler:
    """캐시 관리 핸들러"""

    def __init__(self, cache: ResponseCache):
        self._cache = cache

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    async def stats(self) -> CacheStatsResponse:
        return CacheStatsResponse(**await self._cache.stats())

    async def invalidate(self, request: CacheInvalidateRequest) -> CacheDeleteResponse:
        deleted = await self._cache.invalidate(request.path_prefix, **request.query)
        return CacheDeleteResponse(deleted=deleted)

    async def purge(self) -> CacheDeleteResponse:
        deleted = await self._cache.purge_expired()
        logger.info(f"Cache purged by operator: deleted={deleted}")
        return CacheDeleteResponse(deleted=deleted)
