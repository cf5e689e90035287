"""
FastAPI 응답 캐시 연동

GET 요청만 캐시합니다. 키는 요청 경로, 쿼리 파라미터, 정책의 scope로 만듭니다.

사용 예시:
    @router.get("/jobs/stats")
    async def get_stats(request: Request):
        return await cached_response(request, STATS_POLICY, compute_stats, cache)
"""

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from cache.key import build_cache_key
from cache.main import Compute, ResponseCache, call_compute
from cache.model import CachePolicy


async def cached_response(
    request: Request,
    policy: CachePolicy,
    compute: Compute,
    cache: ResponseCache,
    scope: str | None = None,
) -> JSONResponse:
    """
    캐시를 거쳐 JSON 응답 생성

    Args:
        request: FastAPI 요청
        policy: TTL / 공개 여부 / Cache-Control
        compute: 응답 본문 계산 함수
        cache: ResponseCache
        scope: 호출자 범위 (policy.public이 False일 때 키에 포함)
    """
    if request.method != "GET":
        payload = await call_compute(compute)
        return JSONResponse(jsonable_encoder(payload))

    query: dict[str, Any] = {}
    for name in request.query_params.keys():
        values = request.query_params.getlist(name)
        query[name] = values[0] if len(values) == 1 else values

    _, key_parts = build_cache_key(
        request.url.path,
        query,
        scope=None if policy.public else (scope or ""),
    )

    async def compute_json() -> Any:
        return jsonable_encoder(await call_compute(compute))

    payload = await cache.get_or_compute(key_parts, policy.ttl_seconds, compute_json)

    headers = {"Cache-Control": policy.cache_control} if policy.cache_control else None
    return JSONResponse(payload, headers=headers)
