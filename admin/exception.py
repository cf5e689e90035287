"""
Admin 관련 예외 클래스 정의
"""

from common.exception import NotiqError


class AdminError(NotiqError):
    """Admin 기본 예외"""
    pass


class UnauthorizedError(AdminError):
    """트리거 토큰 불일치"""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)
