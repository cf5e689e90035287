"""데이터베이스 공통 인터페이스"""

from abc import ABC, abstractmethod
from typing import Any


class BaseDatabase(ABC):
    """
    데이터베이스 구현체 기본 클래스

    DatabaseRegistry에 이름으로 등록되며, 트랜잭션과 aiosql 쿼리 세트를 제공합니다.
    """

    def __init__(self, name: str):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    def transaction(self, readonly: bool = False) -> Any:
        """트랜잭션 컨텍스트 매니저 반환"""

    @abstractmethod
    def load_queries(self, name: str, sql_path: str) -> Any:
        """aiosql로 SQL 파일 로드"""

    @abstractmethod
    def get_queries(self, name: str) -> Any:
        """로드된 쿼리 세트 반환"""

    @abstractmethod
    async def close(self) -> None:
        """데이터베이스 연결 종료"""
