"""
트랜잭션 컨텍스트 바인딩

현재 태스크에서 사용 중인 TransactionContext를 DB 이름별로 contextvars에 보관합니다.
asyncio 태스크마다 독립된 값을 가지므로 동시 실행되는 트랜잭션이 섞이지 않습니다.
"""

from contextvars import ContextVar
from typing import Any

_connections: ContextVar[dict[str, Any] | None] = ContextVar("_connections", default=None)


def set_connection(name: str, ctx: Any) -> None:
    """현재 태스크에 트랜잭션 컨텍스트 바인딩"""
    current = dict(_connections.get() or {})
    current[name] = ctx
    _connections.set(current)


def clear_connection(name: str) -> None:
    """바인딩 해제"""
    current = dict(_connections.get() or {})
    current.pop(name, None)
    _connections.set(current)


def get_current_connection(name: str) -> Any | None:
    """바인딩된 트랜잭션 컨텍스트 조회 (없으면 None)"""
    return (_connections.get() or {}).get(name)
