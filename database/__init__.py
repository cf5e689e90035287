"""
비동기 데이터베이스 패키지

사용 예시:
    from database import transactional, get_connection
    from database.registry import DatabaseRegistry

    # 초기화 (config에서)
    await DatabaseRegistry.init_from_config(config)
    db = get_db('default')

    # 트랜잭션 데코레이터
    @transactional
    async def count_jobs():
        ctx = get_connection()
        return await ctx.fetch_val("SELECT COUNT(*) FROM notification_jobs")

    # 수동 트랜잭션
    async with db.transaction() as ctx:
        await ctx.execute("UPDATE ...")
"""

import functools
from typing import Any, Callable

from database.base import BaseDatabase
from database.context import get_current_connection
from database.exception import (
    DatabaseError,
    DatabaseNotFoundError,
    ConnectionPoolExhaustedError,
    TransactionError,
    QueryExecutionError,
    ReadOnlyTransactionError,
)
from database.registry import DatabaseRegistry

__all__ = [
    'get_db',
    'get_connection',
    'transactional',
    'transactional_readonly',
    'BaseDatabase',
    'DatabaseRegistry',
    'DatabaseError',
    'DatabaseNotFoundError',
    'ConnectionPoolExhaustedError',
    'TransactionError',
    'QueryExecutionError',
    'ReadOnlyTransactionError',
]


def get_db(name: str = 'default') -> BaseDatabase:
    """등록된 데이터베이스 반환"""
    return DatabaseRegistry.get(name)


def get_connection(name: str = 'default') -> Any:
    """현재 태스크에 바인딩된 TransactionContext 반환"""
    ctx = get_current_connection(name)
    if ctx is None:
        raise TransactionError(
            f"No active transaction for database '{name}'. "
            f"Use @transactional or db.transaction()."
        )
    return ctx


def _wrap(func: Callable, target: BaseDatabase | str, readonly: bool) -> Callable:
    name = target.name if isinstance(target, BaseDatabase) else target

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        # 이미 같은 DB 트랜잭션 안이면 합류
        if get_current_connection(name) is not None:
            return await func(*args, **kwargs)

        db = target if isinstance(target, BaseDatabase) else get_db(name)
        async with db.transaction(readonly=readonly):
            return await func(*args, **kwargs)

    return wrapper


def _decorator(arg: Any, readonly: bool) -> Callable:
    if callable(arg):
        return _wrap(arg, 'default', readonly)

    target = arg if arg is not None else 'default'

    def decorator(func: Callable) -> Callable:
        return _wrap(func, target, readonly)

    return decorator


def transactional(arg: Any = None) -> Callable:
    """
    쓰기 트랜잭션 데코레이터

    @transactional, @transactional('name'), @transactional(db) 모두 지원합니다.
    예외 발생 시 롤백, 정상 종료 시 커밋합니다.
    """
    return _decorator(arg, readonly=False)


def transactional_readonly(arg: Any = None) -> Callable:
    """읽기 전용 트랜잭션 데코레이터 (쓰기 쿼리는 ReadOnlyTransactionError)"""
    return _decorator(arg, readonly=True)
