"""
시각 유틸리티

DB에는 UTC 고정폭 문자열로 저장하여 문자열 비교가 시간 순서와 일치하도록 합니다.
"""

from datetime import datetime, timezone
from typing import Callable

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(dt: datetime) -> str:
    """datetime -> DB 문자열 (naive는 UTC로 간주)"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def from_db_time(value: str | None) -> datetime | None:
    """DB 문자열 -> aware datetime (UTC)"""
    if not value:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
