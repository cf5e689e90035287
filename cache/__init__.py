"""ResponseCache 패키지 - TTL 기반 계산 결과 캐시"""

from cache.key import build_cache_key, cache_key, normalize_query
from cache.main import ResponseCache
from cache.model import CacheConfig, CacheEntry, CachePolicy

__all__ = [
    "ResponseCache",
    "CacheConfig",
    "CacheEntry",
    "CachePolicy",
    "build_cache_key",
    "cache_key",
    "normalize_query",
]
