"""
SQLite3 백엔드 (aiosqlite 커넥션풀)

notification_jobs / api_cache 테이블은 최초 연결 시 sql/init.sql로 생성됩니다.
여러 프로세스가 같은 파일을 공유하는 경우 journal_mode=WAL, busy_timeout 설정을 권장합니다.

    databases:
      default:
        type: sqlite3
        path: ./data/notiq.db
        options:
          journal_mode: WAL
          busy_timeout: 5000
"""

from database.sqlite3.connection import (
    SQLiteDatabase,
    AsyncConnectionPool,
    TransactionContext,
    PoolConfig,
    SqliteOptions,
)

__all__ = [
    'SQLiteDatabase',
    'AsyncConnectionPool',
    'TransactionContext',
    'PoolConfig',
    'SqliteOptions',
]
