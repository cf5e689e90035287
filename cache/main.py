"""
ResponseCache: TTL 기반 계산 결과 캐시

비용이 큰 조회 결과를 api_cache 테이블에 저장하고, 같은 키의 요청이 TTL 안에 다시 오면
compute를 호출하지 않고 저장된 값을 반환합니다.

- 만료(expires_at <= now)된 엔트리는 물리적으로 남아 있어도 없는 것으로 취급
- 저장은 key 기준 upsert라 동시 miss가 겹쳐도 충돌하지 않음 (나중 쓰기가 덮어씀)
- compute 실패는 호출자에게 전파되며 캐시에 기록하지 않음
- 저장소 장애 시 compute 결과를 캐시 없이 반환 (캐시 장애가 서비스 장애가 되지 않도록)

사용 예시:
    cache = ResponseCache(CacheConfig())
    data = await cache.get_or_compute(
        {"path": "/api/liquidity/summary", "query": {"pool": "TraderCall"}},
        ttl_seconds=60,
        compute=lambda: load_liquidity("TraderCall"),
    )
"""

import inspect
import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from aiosql.queries import Queries

from cache.key import cache_key, normalize_query, stable_dumps
from cache.model import CacheConfig, CacheEntry
from common.clock import Clock, to_db_time, utcnow
from common.exception import ValidationError
from database import DatabaseError, get_db

logger = logging.getLogger(__name__)

SQL_PATH = Path(__file__).parent / "sql" / "cache.sql"

Compute = Callable[[], Awaitable[Any] | Any]


class ResponseCache:
    """키 기반 TTL 캐시"""

    def __init__(self, config: CacheConfig | None = None, clock: Clock = utcnow):
        self._config = config or CacheConfig()
        self._clock = clock

    @property
    def config(self) -> CacheConfig:
        return self._config

    def _get_queries(self) -> Queries:
        db = get_db(self._config.database)
        queries = db.get_queries('cache')
        if queries is None:
            queries = db.load_queries('cache', str(SQL_PATH))
        return queries

    async def get_or_compute(
        self,
        key_parts: Mapping[str, Any],
        ttl_seconds: int | None,
        compute: Compute,
    ) -> Any:
        """
        캐시 조회 후 없으면 계산하여 저장

        Args:
            key_parts: 요청 식별 요소 (path, query, scope 등)
            ttl_seconds: 유효 시간 (None이면 기본값)
            compute: 계산 함수 (코루틴 함수 또는 일반 함수)

        Returns:
            캐시된 값 또는 새로 계산한 값

        Raises:
            ValidationError: ttl_seconds <= 0 또는 key_parts 직렬화 불가
            Exception: compute가 발생시킨 예외 그대로
        """
        if ttl_seconds is None:
            ttl_seconds = self._config.default_ttl_seconds
        if ttl_seconds <= 0:
            raise ValidationError("ttl_seconds", f"must be positive, got {ttl_seconds}")

        key = cache_key(key_parts)
        key_parts_str = stable_dumps(key_parts)

        try:
            entry = await self._lookup(key)
        except DatabaseError as e:
            logger.warning(f"Cache read failed, computing uncached: key={key[:12]}, error={e}")
            return await call_compute(compute)

        if entry is not None:
            logger.debug(f"Cache hit: key={key[:12]}")
            return entry.payload

        logger.debug(f"Cache miss: key={key[:12]}")
        result = await call_compute(compute)

        try:
            payload_str = json.dumps(result)
        except (TypeError, ValueError) as e:
            logger.warning(f"Result not JSON serializable, not cached: key={key[:12]}, error={e}")
            return result

        try:
            await self._store(key, key_parts_str, payload_str, ttl_seconds)
        except DatabaseError as e:
            logger.warning(f"Cache write failed, returning uncached result: key={key[:12]}, error={e}")

        return result

    async def get(self, key: str) -> CacheEntry | None:
        """키로 살아 있는 엔트리 조회 (진단용)"""
        return await self._lookup(key)

    async def invalidate(self, path_prefix: str, **query: Any) -> int:
        """
        경로 접두사(와 쿼리 값)가 일치하는 엔트리 삭제

        예: invalidate("/api/liquidity/", pool="TraderCall")

        저장소 오류는 로그만 남기고 0을 반환합니다.

        Returns:
            삭제된 엔트리 수
        """
        expected = normalize_query(query)

        async def delete(queries: Queries, conn: Any) -> int:
            if not expected:
                return await queries.delete_by_path_prefix(conn, path_prefix=path_prefix)

            deleted = 0
            rows = await queries.get_keys_by_path_prefix(conn, path_prefix=path_prefix)
            for row in rows:
                entry_query = json.loads(row["key_parts"] or "{}").get("query") or {}
                if all(entry_query.get(k) == v for k, v in expected.items()):
                    deleted += await queries.delete_entry(conn, key=row["key"])
            return deleted

        try:
            deleted = await self._run(delete)
        except DatabaseError as e:
            logger.error(f"Cache invalidation failed: path_prefix={path_prefix}, query={query}, error={e}")
            return 0

        logger.info(f"Cache invalidated: path_prefix={path_prefix}, query={query}, deleted={deleted}")
        return deleted

    async def purge_expired(self) -> int:
        """
        만료 엔트리 물리 삭제 (정합성과 무관한 정리 작업)

        Returns:
            삭제된 엔트리 수
        """
        now = to_db_time(self._clock())
        deleted = await self._run(lambda queries, conn: queries.purge_expired(conn, now=now))
        if deleted:
            logger.info(f"Purged {deleted} expired cache entries")
        return deleted

    async def stats(self) -> dict[str, int]:
        """전체/유효/만료 엔트리 수"""
        now = to_db_time(self._clock())
        row = await self._run(
            lambda queries, conn: queries.get_stats(conn, now=now),
            readonly=True,
        )
        return {"total": row["total"], "live": row["live"], "expired": row["expired"]}

    async def _lookup(self, key: str) -> CacheEntry | None:
        now = to_db_time(self._clock())
        row = await self._run(
            lambda queries, conn: queries.get_live_entry(conn, key=key, now=now),
            readonly=True,
        )
        return CacheEntry.from_row(row) if row else None

    async def _store(self, key: str, key_parts: str, payload: str, ttl_seconds: int) -> None:
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds)
        await self._run(
            lambda queries, conn: queries.upsert_entry(
                conn,
                key=key,
                key_parts=key_parts,
                payload=payload,
                expires_at=to_db_time(expires_at),
                now=to_db_time(now),
            )
        )

    async def _run(self, func, readonly: bool = False) -> Any:
        queries = self._get_queries()
        db = get_db(self._config.database)
        async with db.transaction(readonly=readonly) as ctx:
            return await func(queries, ctx.connection)


async def call_compute(compute: Compute) -> Any:
    """코루틴/일반 함수 모두 지원"""
    result = compute()
    if inspect.isawaitable(result):
        result = await result
    return result

