"""
캐시 키 생성

키는 key_parts의 안정적 JSON 직렬화(정렬된 키, 공백 없는 구분자)의 sha256 값입니다.
속성 순서가 달라도 의미가 같은 요청은 같은 키를 가집니다.
"""

import hashlib
import json
from typing import Any, Mapping

from common.exception import ValidationError

# 캐시 무효화용 쿼리 파라미터 (키 계산에서 제외)
IGNORED_QUERY_KEYS = frozenset({"_t", "t", "ts", "timestamp", "cacheBust", "cachebuster"})


def normalize_query(query: Mapping[str, Any] | None) -> dict[str, Any]:
    """cache-buster 파라미터 제거"""
    return {k: v for k, v in (query or {}).items() if k not in IGNORED_QUERY_KEYS}


def stable_dumps(value: Any) -> str:
    """정렬된 키로 JSON 직렬화"""
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValidationError("key_parts", f"not JSON serializable ({e})")


def cache_key(key_parts: Mapping[str, Any]) -> str:
    """key_parts -> sha256 hex"""
    return hashlib.sha256(stable_dumps(key_parts).encode("utf-8")).hexdigest()


def build_cache_key(
    path: str,
    query: Mapping[str, Any] | None = None,
    scope: str | None = None,
) -> tuple[str, dict[str, Any]]:
    """
    요청 경로/쿼리/호출자 범위로 캐시 키 생성

    Args:
        path: 요청 경로 (쿼리스트링 제외)
        query: 쿼리 파라미터
        scope: 호출자 범위 (None이면 공유 캐시)

    Returns:
        (key, key_parts)
    """
    key_parts: dict[str, Any] = {"path": path, "query": normalize_query(query)}
    if scope is not None:
        key_parts["scope"] = scope
    return cache_key(key_parts), key_parts
