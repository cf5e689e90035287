"""
SQLite3 비동기 커넥션풀

쓰기 트랜잭션은 BEGIN IMMEDIATE로 시작합니다. 여러 워커 프로세스가 같은 DB 파일을
공유해도 잡 점유(claim)와 완료 처리의 조건부 UPDATE가 서로 끼어들지 않습니다.
읽기 전용 트랜잭션(BEGIN DEFERRED)은 쓰기 락을 잡지 않습니다.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import aiosql
from aiosql.queries import Queries

from database.base import BaseDatabase
from database.context import set_connection, clear_connection
from database.exception import (
    ConnectionPoolExhaustedError,
    QueryExecutionError,
    ReadOnlyTransactionError,
    TransactionError,
)

logger = logging.getLogger(__name__)

# init.sql에 정의된 스키마 쿼리 (실행 순서)
INIT_QUERIES = (
    'create_notification_jobs_table',
    'create_notification_jobs_indexes',
    'create_api_cache_table',
    'create_api_cache_indexes',
)

WRITE_KEYWORDS = ('INSERT', 'UPDATE', 'DELETE', 'CREATE', 'DROP', 'ALTER', 'REPLACE')


def _from_dict(cls, values: dict[str, Any] | None):
    """알 수 없는 키는 무시하고 dataclass 생성"""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (values or {}).items() if k in known})


@dataclass
class PoolConfig:
    """커넥션풀 설정 (database.yaml의 pool)"""
    pool_size: int = 5
    pool_timeout: float = 30.0
    max_idle_time: float = 300.0
    cleanup_interval: float = 60.0

    @classmethod
    def from_dict(cls, values: dict[str, Any] | None) -> 'PoolConfig':
        return _from_dict(cls, values)


@dataclass
class SqliteOptions:
    """SQLite PRAGMA 설정 (database.yaml의 options)"""
    busy_timeout: int = 5000
    journal_mode: str = 'WAL'
    synchronous: str = 'NORMAL'
    cache_size: int = -2000
    foreign_keys: bool = True

    @classmethod
    def from_dict(cls, values: dict[str, Any] | None) -> 'SqliteOptions':
        return _from_dict(cls, values)

    def pragmas(self) -> list[str]:
        return [
            f"PRAGMA busy_timeout={self.busy_timeout}",
            f"PRAGMA journal_mode={self.journal_mode}",
            f"PRAGMA synchronous={self.synchronous}",
            f"PRAGMA cache_size={self.cache_size}",
            f"PRAGMA foreign_keys={'ON' if self.foreign_keys else 'OFF'}",
        ]


@dataclass
class PooledConnection:
    """풀에서 관리되는 연결"""
    connection: aiosqlite.Connection
    created_at: datetime = field(default_factory=datetime.now)
    last_used_at: datetime = field(default_factory=datetime.now)
    in_use: bool = False

    def touch(self) -> None:
        self.last_used_at = datetime.now()


class TransactionContext:
    """
    하나의 풀 연결 위에서 진행 중인 트랜잭션

    aiosql 쿼리에는 connection 속성을 넘깁니다. 읽기 전용이면 쓰기 SQL을 거부합니다.
    """

    def __init__(self, connection: aiosqlite.Connection, readonly: bool = False):
        self._connection = connection
        self._readonly = readonly
        self._in_transaction = False

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._connection

    @property
    def readonly(self) -> bool:
        return self._readonly

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    async def begin(self) -> None:
        """트랜잭션 시작"""
        if self._in_transaction:
            logger.warning("Transaction already started")
            return
        try:
            if self._readonly:
                await self._connection.execute("BEGIN DEFERRED")
            else:
                await self._connection.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise TransactionError(f"Failed to begin transaction: {e}") from e
        self._in_transaction = True
        logger.debug("Transaction started")

    async def commit(self) -> None:
        """트랜잭션 커밋"""
        if not self._in_transaction:
            logger.warning("No active transaction to commit")
            return
        try:
            await self._connection.commit()
        except sqlite3.Error as e:
            raise TransactionError(f"Failed to commit transaction: {e}") from e
        self._in_transaction = False
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        """트랜잭션 롤백"""
        if not self._in_transaction:
            logger.warning("No active transaction to rollback")
            return
        try:
            await self._connection.rollback()
        finally:
            self._in_transaction = False
        logger.debug("Transaction rolled back")

    async def execute(self, sql: str, parameters: Any = None) -> aiosqlite.Cursor:
        """SQL 실행"""
        if self._readonly and self._is_write_query(sql):
            raise ReadOnlyTransactionError("Cannot execute write query in readonly transaction")

        _log_query(sql, parameters)
        try:
            if parameters:
                return await self._connection.execute(sql, parameters)
            return await self._connection.execute(sql)
        except sqlite3.Error as e:
            raise QueryExecutionError(str(e), sql) from e

    async def fetch_one(self, sql: str, parameters: Any = None) -> aiosqlite.Row | None:
        """단일 행 조회"""
        cursor = await self.execute(sql, parameters)
        row = await cursor.fetchone()
        _log_result(1 if row else 0)
        return row

    async def fetch_all(self, sql: str, parameters: Any = None) -> list[aiosqlite.Row]:
        """모든 행 조회"""
        cursor = await self.execute(sql, parameters)
        rows = await cursor.fetchall()
        _log_result(len(rows))
        return list(rows)

    async def fetch_val(self, sql: str, parameters: Any = None) -> Any:
        """단일 값 조회"""
        row = await self.fetch_one(sql, parameters)
        return row[0] if row else None

    @staticmethod
    def _is_write_query(sql: str) -> bool:
        return sql.lstrip().upper().startswith(WRITE_KEYWORDS)


def _log_query(sql: str, parameters: Any = None) -> None:
    sql_oneline = " ".join(sql.split())
    logger.debug(f"[SQL] {sql_oneline}" + (f" | params={parameters}" if parameters else ""))


def _log_result(row_count: int) -> None:
    logger.debug(f"[SQL] rows={row_count}")


class AsyncConnectionPool:
    """
    고정 크기 aiosqlite 커넥션풀

    pool_size개의 연결을 미리 열어 두고 세마포어로 동시 사용 수를 제한합니다.
    max_idle_time보다 오래 쉬고 있던 연결은 백그라운드에서 다시 엽니다.
    """

    def __init__(
        self,
        db_path: str,
        pool_config: PoolConfig | None = None,
        sqlite_options: SqliteOptions | None = None
    ):
        self._db_path = Path(db_path)
        self._pool_config = pool_config or PoolConfig()
        self._sqlite_options = sqlite_options or SqliteOptions()

        self._pool: list[PooledConnection] = []
        self._lock = asyncio.Lock()
        self._semaphore: asyncio.Semaphore | None = None
        self._initialized = False
        self._closed = False

        self._cleanup_task: asyncio.Task | None = None

    async def initialize(self) -> None:
        """커넥션풀 초기화"""
        if self._initialized:
            logger.warning("Connection pool already initialized")
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._semaphore = asyncio.Semaphore(self._pool_config.pool_size)

        for _ in range(self._pool_config.pool_size):
            conn = await self._create_connection()
            self._pool.append(PooledConnection(connection=conn))

        self._initialized = True
        self._cleanup_task = asyncio.create_task(self._cleanup_idle_connections())

        logger.info(
            f"Connection pool initialized: path={self._db_path}, "
            f"size={self._pool_config.pool_size}, timeout={self._pool_config.pool_timeout}s"
        )

    async def _create_connection(self) -> aiosqlite.Connection:
        """새로운 SQLite 연결 생성"""
        conn = await aiosqlite.connect(
            self._db_path,
            timeout=self._sqlite_options.busy_timeout / 1000.0
        )

        conn.row_factory = aiosqlite.Row
        for pragma in self._sqlite_options.pragmas():
            await conn.execute(pragma)

        logger.debug(f"Connection opened: path={self._db_path}")
        return conn

    async def acquire(self, timeout: float | None = None) -> PooledConnection:
        """커넥션풀에서 연결 획득"""
        if not self._initialized:
            raise RuntimeError("Connection pool not initialized. Call initialize() first.")

        if self._closed:
            raise ConnectionPoolExhaustedError("Connection pool is closed.")

        timeout = timeout or self._pool_config.pool_timeout

        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionPoolExhaustedError(
                f"Connection pool exhausted. Timeout after {timeout}s"
            )

        async with self._lock:
            for pooled_conn in self._pool:
                if not pooled_conn.in_use:
                    pooled_conn.in_use = True
                    pooled_conn.touch()
                    return pooled_conn

        self._semaphore.release()
        raise ConnectionPoolExhaustedError("No available connection in pool")

    async def release(self, pooled_conn: PooledConnection) -> None:
        """연결을 풀에 반환"""
        async with self._lock:
            pooled_conn.in_use = False
            pooled_conn.touch()
        self._semaphore.release()
        logger.debug(f"Connection released: available={self.available}/{self.size}")

    async def _cleanup_idle_connections(self) -> None:
        """유휴 연결 정리 (백그라운드 태스크)"""
        while not self._closed:
            await asyncio.sleep(self._pool_config.cleanup_interval)

            async with self._lock:
                now = datetime.now()
                for pooled_conn in self._pool:
                    if pooled_conn.in_use:
                        continue
                    idle_time = (now - pooled_conn.last_used_at).total_seconds()
                    if idle_time <= self._pool_config.max_idle_time:
                        continue
                    try:
                        await pooled_conn.connection.close()
                        pooled_conn.connection = await self._create_connection()
                        pooled_conn.created_at = datetime.now()
                        pooled_conn.touch()
                        logger.debug(f"Refreshed idle connection: idle={idle_time:.0f}s")
                    except sqlite3.Error as e:
                        logger.error(f"Failed to refresh connection: {e}")

    async def close(self) -> None:
        """모든 연결을 닫고 풀 종료"""
        self._closed = True

        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass

        async with self._lock:
            for pooled_conn in self._pool:
                try:
                    await pooled_conn.connection.close()
                except sqlite3.Error as e:
                    logger.error(f"Error closing connection: {e}")
            self._pool.clear()

        logger.info("Connection pool closed")

    @property
    def size(self) -> int:
        """현재 풀의 연결 수"""
        return len(self._pool)

    @property
    def available(self) -> int:
        """사용 가능한 연결 수"""
        return sum(1 for pc in self._pool if not pc.in_use)


class ManagedTransaction:
    """
    SQLite 트랜잭션 컨텍스트 매니저

    블록 안에서 발생한 드라이버 예외(sqlite3.Error)는 롤백 후 QueryExecutionError로 변환됩니다.
    """

    def __init__(self, db: 'SQLiteDatabase', readonly: bool = False):
        self._db = db
        self._readonly = readonly
        self._pooled_conn: PooledConnection | None = None
        self._ctx: TransactionContext | None = None

    async def __aenter__(self) -> TransactionContext:
        self._pooled_conn = await self._db.pool.acquire()
        self._ctx = TransactionContext(self._pooled_conn.connection, self._readonly)
        try:
            await self._ctx.begin()
        except TransactionError:
            await self._db.pool.release(self._pooled_conn)
            raise

        set_connection(self._db.name, self._ctx)
        return self._ctx

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if exc_type:
                await self._ctx.rollback()
            else:
                try:
                    await self._ctx.commit()
                except TransactionError:
                    await self._ctx.rollback()
                    raise
        finally:
            clear_connection(self._db.name)
            await self._db.pool.release(self._pooled_conn)

        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise QueryExecutionError(str(exc_val)) from exc_val


class SQLiteDatabase(BaseDatabase):
    """
    SQLite 데이터베이스 구현

    사용 예시:
        db = await SQLiteDatabase.create('default', config)

        async with db.transaction() as ctx:
            await ctx.execute(...)

        queries = db.load_queries('worker', 'worker/sql/worker.sql')
    """

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name)
        self._config = config
        self._pool: AsyncConnectionPool | None = None
        self._queries: dict[str, Queries] = {}

    @classmethod
    async def create(cls, name: str, config: dict[str, Any]) -> 'SQLiteDatabase':
        """SQLiteDatabase 인스턴스 생성 및 초기화"""
        instance = cls(name, config)
        await instance._initialize()
        return instance

    async def _initialize(self) -> None:
        """내부 초기화"""
        self._pool = AsyncConnectionPool(
            db_path=self._config.get("path", f"./data/{self.name}.db"),
            pool_config=PoolConfig.from_dict(self._config.get("pool")),
            sqlite_options=SqliteOptions.from_dict(self._config.get("options")),
        )
        await self._pool.initialize()

        if self._config.get('init_schema', True):
            await self._run_init_sql()

        logger.info(f"SQLiteDatabase initialized: name={self.name}")

    async def _run_init_sql(self) -> None:
        """초기 테이블 생성 SQL 실행"""
        init_sql_path = Path(__file__).parent / 'sql' / 'init.sql'
        queries = aiosql.from_path(str(init_sql_path), "aiosqlite")
        pooled_conn = await self._pool.acquire()
        try:
            for query_name in INIT_QUERIES:
                await getattr(queries, query_name)(pooled_conn.connection)
            await pooled_conn.connection.commit()
            logger.info(f"Schema ensured: database={self.name}, statements={len(INIT_QUERIES)}")
        finally:
            await self._pool.release(pooled_conn)

    def transaction(self, readonly: bool = False) -> ManagedTransaction:
        """트랜잭션 컨텍스트 매니저 반환"""
        return ManagedTransaction(self, readonly)

    @property
    def pool(self) -> AsyncConnectionPool:
        """커넥션풀 반환"""
        if self._pool is None:
            raise RuntimeError(f"Database '{self.name}' not initialized")
        return self._pool

    def load_queries(self, name: str, sql_path: str) -> Queries:
        """aiosql로 SQL 파일 로드"""
        queries = aiosql.from_path(sql_path, "aiosqlite")
        self._queries[name] = queries
        return queries

    def get_queries(self, name: str) -> Queries | None:
        """로드된 쿼리 세트 반환"""
        return self._queries.get(name)

    async def close(self) -> None:
        """데이터베이스 연결 종료"""
        if self._pool:
            await self._pool.close()
        logger.info(f"SQLiteDatabase closed: name={self.name}")

