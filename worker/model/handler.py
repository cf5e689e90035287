"""
핸들러 결과 모델

핸들러는 예외를 던지거나 success=False 결과를 반환해 실패를 알립니다.
둘 다 Executor에서 complete_failure로 변환되어 재시도 대상이 됩니다.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class HandlerResult(BaseModel):
    """잡 type별 핸들러 실행 결과"""
    model_config = ConfigDict(extra='allow')

    action: str                   # summary / skip / no_operations 등 핸들러가 수행한 일
    success: bool = True
    count: int | None = None      # 발송한 알림 수
    data: Any = None
    error: str | None = None      # success=False일 때 last_error로 기록

    @classmethod
    def failure(cls, action: str, error: str) -> "HandlerResult":
        return cls(action=action, success=False, error=error)
