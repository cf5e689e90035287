"""
Database 관련 예외 클래스 정의
"""


class DatabaseError(Exception):
    """Database 기본 예외"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class DatabaseNotFoundError(DatabaseError):
    """등록되지 않은 데이터베이스"""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Database '{name}' is not registered")


class ConnectionPoolExhaustedError(DatabaseError):
    """커넥션풀 소진 (타임아웃)"""
    pass


class TransactionError(DatabaseError):
    """트랜잭션 시작/커밋/롤백 실패"""
    pass


class QueryExecutionError(DatabaseError):
    """쿼리 실행 실패"""
    def __init__(self, message: str, sql: str | None = None):
        self.sql = sql
        super().__init__(message)


class ReadOnlyTransactionError(DatabaseError):
    """읽기 전용 트랜잭션에서 쓰기 시도"""
    pass
