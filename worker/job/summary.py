"""
AUTO_CONVERT_RANGES_SUMMARY 핸들러

가격 범위 자동 변환 크론이 남긴 작업 요약을 구독 서비스별로 묶어 알림으로 발송합니다.

payload 예시:
{
    "acciones": [
        {"symbol": "RGTI", "tipo": "entry_confirmed", "alertaTipo": "TraderCall"}
    ],
    "sendNoOperations": false,
    "source": "auto-convert-ranges",
    "runId": "1700000000000_ab12"
}
"""

import logging
from collections import defaultdict
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from worker.base import BaseHandler, handler, HandlerResult
from worker.model import Job

logger = logging.getLogger(__name__)

AUTO_CONVERT_RANGES_SUMMARY = "AUTO_CONVERT_RANGES_SUMMARY"


class SummaryPayload(BaseModel):
    """요약 잡 payload"""
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    acciones: list[dict[str, Any]] = Field(default_factory=list)
    send_no_operations: bool = Field(default=False, alias="sendNoOperations")
    source: str | None = None
    run_id: str | None = Field(default=None, alias="runId")


class NotificationSender(Protocol):
    """알림 발송 채널 (이메일/푸시 등은 애플리케이션이 주입)"""

    async def send_summary(self, service: str, actions: list[dict[str, Any]]) -> None: ...

    async def send_no_operations(self) -> None: ...


class LoggingSender:
    """기본 발송기 - 로그로만 남김"""

    async def send_summary(self, service: str, actions: list[dict[str, Any]]) -> None:
        symbols = ", ".join(str(a.get("symbol", "?")) for a in actions)
        logger.info(f"[SUMMARY] service={service}, actions={len(actions)}, symbols={symbols}")

    async def send_no_operations(self) -> None:
        logger.info("[SUMMARY] no operations today")


_sender: NotificationSender = LoggingSender()


def set_sender(sender: NotificationSender) -> None:
    """발송기 교체"""
    global _sender
    _sender = sender


def get_sender() -> NotificationSender:
    return _sender


@handler(AUTO_CONVERT_RANGES_SUMMARY)
class SummaryNotificationHandler(BaseHandler):
    """
    작업 요약 알림 핸들러

    - acciones가 있으면 alertaTipo(서비스)별로 묶어 발송
    - 없고 sendNoOperations=true면 '작업 없음' 알림 발송
    - 둘 다 아니면 아무 것도 보내지 않고 성공 처리
    """

    async def execute(self, job: Job) -> HandlerResult:
        try:
            payload = SummaryPayload.model_validate(job.payload or {})
        except ValidationError as e:
            return HandlerResult.failure("summary", f"invalid payload: {e.error_count()} error(s)")

        sender = get_sender()

        if payload.acciones:
            by_service: dict[str, list[dict[str, Any]]] = defaultdict(list)
            for action in payload.acciones:
                by_service[str(action.get("alertaTipo", "unknown"))].append(action)

            for service, actions in by_service.items():
                await sender.send_summary(service, actions)

            return HandlerResult(
                action="summary",
                count=len(payload.acciones),
                data={"services": sorted(by_service)},
            )

        if payload.send_no_operations:
            await sender.send_no_operations()
            return HandlerResult(action="no_operations", count=0)

        logger.info(f"Job {job.id} has no actions and sendNoOperations is false; nothing sent")
        return HandlerResult(action="skip", count=0)
