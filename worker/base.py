import importlib
import logging
import pkgutil
from abc import ABC, abstractmethod

from worker.exception import HandlerNotFoundError
from worker.model import Job, HandlerResult

__all__ = [
    'handler',
    'get_handler',
    'get_registered_handlers',
    'is_registered',
    'BaseHandler',
    'load_handlers',
    'HandlerResult',
    'HandlerNotFoundError',
]

logger = logging.getLogger(__name__)

# 핸들러 레지스트리 (모듈 레벨). 키는 잡 type
_registry: dict[str, type["BaseHandler"]] = {}


def handler(job_type: str):
    """핸들러 등록 데코레이터"""
    def decorator(cls):
        _registry[job_type] = cls
        return cls
    return decorator


def get_handler(job_type: str) -> "BaseHandler":
    """핸들러 인스턴스 반환"""
    if job_type not in _registry:
        raise HandlerNotFoundError(job_type)
    return _registry[job_type]()


def is_registered(job_type: str) -> bool:
    return job_type in _registry


def get_registered_handlers() -> dict[str, type["BaseHandler"]]:
    """등록된 핸들러 목록 반환"""
    return _registry.copy()


class BaseHandler(ABC):
    """잡 type별 처리 핸들러 기본 클래스"""

    @abstractmethod
    async def execute(self, job: Job) -> HandlerResult | None:
        """
        잡 처리 로직

        Args:
            job: 점유(PROCESSING)된 잡. payload 해석은 핸들러 책임

        Returns:
            처리 결과. success=False면 실패로 간주하여 재시도 예약

        Raises:
            Exception: 처리 실패 시 예외 발생 (재시도 예약)
        """
        pass


def load_handlers() -> None:
    """핸들러 모듈 로드 (데코레이터 등록을 위해, 하위 폴더 재귀 탐색)"""
    from worker import job as job_pkg

    def load_recursive(package, prefix: str):
        for _, module_name, is_pkg in pkgutil.iter_modules(package.__path__):
            full_name = f"{prefix}.{module_name}"
            module = importlib.import_module(full_name)
            logger.debug(f"Loaded handler module: {full_name}")
            if is_pkg:
                load_recursive(module, full_name)

    load_recursive(job_pkg, "worker.job")
