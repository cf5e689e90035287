"""
공통 예외 클래스 정의

JobQueue와 ResponseCache가 함께 사용하는 예외입니다.
"""


class NotiqError(Exception):
    """notiq 기본 예외"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(NotiqError):
    """입력값 검증 실패 (저장되지 않음)"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class StoreUnavailableError(NotiqError):
    """저장소에 접근할 수 없음 (DB 연결/쿼리 실패)"""
    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store unavailable during {operation}: {cause}")
