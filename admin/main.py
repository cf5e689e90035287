"""Admin API 서버 진입점"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from admin.api.handler import CacheHandler, JobHandler
from admin.exception import UnauthorizedError
from admin.api.model.common import ErrorDetail, ErrorResponse
from admin.api.router.api import router
from cache.main import ResponseCache
from cache.model import CacheConfig
from common.config import load_config
from common.exception import StoreUnavailableError
from database import DatabaseError
from database.registry import DatabaseRegistry
from worker.base import load_handlers
from worker.executor import Executor
from worker.model import QueueConfig
from worker.queue import JobQueue, new_lock_owner

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 생명주기 관리"""
    # 시작 시
    db_name = app.state.config.get('database', 'default')

    # 지정된 DB만 초기화 (테스트 등에서 이미 등록된 경우 제외)
    if db_name not in DatabaseRegistry.names():
        await DatabaseRegistry.init_from_config(app.state.full_config, [db_name])
        logger.info("Database initialized")

    yield

    # 종료 시
    await DatabaseRegistry.close_all()
    logger.info("Database closed")


def create_app(config: dict | None = None) -> FastAPI:
    """
    FastAPI 앱 생성

    Args:
        config: 병합된 설정 (None이면 config/*.yaml 로드)
    """
    config = config if config is not None else load_config()
    admin_config = config.get('admin', {})
    db_name = admin_config.get('database', 'default')

    load_handlers()

    queue = JobQueue(QueueConfig(**{**config.get('queue', {}), 'database': db_name}))
    cache = ResponseCache(CacheConfig(**{**config.get('cache', {}), 'database': db_name}))
    executor = Executor(
        queue,
        new_lock_owner("admin"),
        config.get('worker', {}).get('handler_timeout_seconds'),
    )

    app = FastAPI(
        title="notiq Admin API",
        description="알림 잡 큐 / 응답 캐시 관리 Admin API",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.full_config = config
    app.state.config = admin_config
    app.state.job_handler = JobHandler(queue, executor)
    app.state.cache_handler = CacheHandler(cache)

    # CORS 설정
    cors_config = admin_config.get('cors', {})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.get('origins', ['*']),
        allow_credentials=cors_config.get('allow_credentials', True),
        allow_methods=cors_config.get('allow_methods', ['*']),
        allow_headers=cors_config.get('allow_headers', ['*']),
    )

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError):
        body = ErrorResponse(error=ErrorDetail(code="UNAUTHORIZED", message=exc.message))
        return JSONResponse(status_code=401, content=body.model_dump())

    @app.exception_handler(StoreUnavailableError)
    @app.exception_handler(DatabaseError)
    async def store_error_handler(request: Request, exc: Exception):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
        body = ErrorResponse(error=ErrorDetail(code="STORE_UNAVAILABLE", message=str(exc)))
        return JSONResponse(status_code=503, content=body.model_dump())

    # API 라우터 등록
    app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from common.logging import setup_logging

    config = load_config("admin")
    admin_config = config.get('admin', {})
    setup_logging(**config.get('logging', {}))

    uvicorn.run(
        "admin.main:app",
        host=admin_config.get('host', '0.0.0.0'),
        port=admin_config.get('port', 8080),
        reload=admin_config.get('debug', False),
    )
