"""
로깅 설정

기본은 JSON 한 줄 로그(python-json-logger)이며, 개발 중에는 json_format: false로 텍스트 로그를 씁니다.
logger.info(..., extra={"job_id": ...}) 처럼 넘긴 값은 JSON 필드로 그대로 출력됩니다.
"""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

SERVICE_NAME = "notiq"

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# 외부 라이브러리 로거 (WARNING 이상만)
QUIET_LOGGERS = ('asyncio', 'aiosqlite', 'aiosql', 'httpx', 'uvicorn.access')


class NotiqJsonFormatter(JsonFormatter):
    """JSON 로그 포매터 (timestamp, level, logger, service 필드 추가)"""

    def __init__(self, *args, service: str = SERVICE_NAME, **kwargs):
        super().__init__(*args, **kwargs)
        self._service = service

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = self.formatTime(record)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = self._service

        if record.exc_info and 'exc_info' not in log_record:
            log_record['exc_info'] = self.formatException(record.exc_info)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: str | None = None,
    service: str = SERVICE_NAME,
) -> None:
    """
    루트 로거 설정

    Args:
        level: 로그 레벨 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON 포맷 사용 여부 (False면 텍스트 포맷)
        log_file: 로그 파일 경로 (None이면 stdout만 사용)
        service: JSON 로그의 service 필드 (worker/admin 프로세스 구분용)
    """
    if json_format:
        formatter = NotiqJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s', service=service)
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
