"""Admin API 라우터 (모든 API 통합)"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from admin.api.handler import CacheHandler, JobHandler
from admin.exception import UnauthorizedError
from admin.api.model.cache import CacheDeleteResponse, CacheInvalidateRequest, CacheStatsResponse
from admin.api.model.common import PageParams
from admin.api.model.job import (
    JobCreateRequest,
    JobCreateResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
    ProcessResponse,
)
from cache.http import cached_response
from cache.model import CachePolicy
from common.exception import ValidationError
from database import DatabaseError, get_db
from worker.exception import JobNotFoundError, JobStatusError
from worker.model import JobStatus

logger = logging.getLogger(__name__)

router = APIRouter()


def get_job_handler(request: Request) -> JobHandler:
    return request.app.state.job_handler


def get_cache_handler(request: Request) -> CacheHandler:
    return request.app.state.cache_handler


def verify_trigger_token(request: Request, authorization: str | None = Header(default=None)) -> None:
    """trigger_token이 설정된 경우 Bearer 토큰 검사"""
    token = request.app.state.config.get("trigger_token")
    if token and authorization != f"Bearer {token}":
        logger.warning(f"Unauthorized trigger request from {request.client.host if request.client else '?'}")
        raise UnauthorizedError()


# ============================================
# JOB API
# ============================================

@router.get("/api/jobs", response_model=JobListResponse, tags=["Job"])
async def get_jobs(
    page: int = Query(default=1, ge=1, description="페이지 번호"),
    size: int = Query(default=20, ge=1, le=100, description="페이지 크기"),
    status: JobStatus | None = Query(default=None, description="상태 필터"),
    type: str | None = Query(default=None, description="잡 type 필터"),
    handler: JobHandler = Depends(get_job_handler),
):
    """잡 목록 조회 (최신순)"""
    params = PageParams(page=page, size=size)
    items, total = await handler.get_list(params, status=status, job_type=type)
    return JobListResponse(
        items=items,
        total=total,
        page=page,
        size=size,
        pages=params.pages(total),
    )


@router.get("/api/jobs/stats", response_model=JobStatsResponse, tags=["Job"])
async def get_job_stats(request: Request, handler: JobHandler = Depends(get_job_handler)):
    """상태별 잡 건수 (응답 캐시 적용)"""
    policy = CachePolicy(
        ttl_seconds=request.app.state.config.get("stats_ttl_seconds", 30),
        cache_control="no-store",
    )
    return await cached_response(request, policy, handler.stats, request.app.state.cache_handler.cache)


@router.api_route(
    "/api/jobs/process",
    methods=["GET", "POST"],
    response_model=ProcessResponse,
    dependencies=[Depends(verify_trigger_token)],
    tags=["Job"],
)
async def process_job(handler: JobHandler = Depends(get_job_handler)):
    """잡 하나 처리 (외부 스케줄러 트리거)"""
    return await handler.process_one()


@router.get("/api/jobs/{job_id}", response_model=JobResponse, tags=["Job"])
async def get_job(job_id: str, handler: JobHandler = Depends(get_job_handler)):
    """잡 상세 조회"""
    try:
        return await handler.get_by_id(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/api/jobs", response_model=JobCreateResponse, status_code=201, tags=["Job"])
async def create_job(body: JobCreateRequest, handler: JobHandler = Depends(get_job_handler)):
    """잡 등록"""
    try:
        job_id = await handler.create(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return JobCreateResponse(id=job_id)


@router.post("/api/jobs/{job_id}/reset", response_model=JobResponse, tags=["Job"])
async def reset_job(job_id: str, handler: JobHandler = Depends(get_job_handler)):
    """FAILED 잡 재시도 (PENDING으로 되돌림)"""
    try:
        return await handler.reset(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except JobStatusError as e:
        raise HTTPException(status_code=409, detail=e.message)


# ============================================
# CACHE API
# ============================================

@router.get("/api/cache/stats", response_model=CacheStatsResponse, tags=["Cache"])
async def get_cache_stats(handler: CacheHandler = Depends(get_cache_handler)):
    """캐시 엔트리 수"""
    return await handler.stats()


@router.post("/api/cache/invalidate", response_model=CacheDeleteResponse, tags=["Cache"])
async def invalidate_cache(body: CacheInvalidateRequest, handler: CacheHandler = Depends(get_cache_handler)):
    """경로 접두사(와 쿼리 값) 기준 캐시 삭제"""
    return await handler.invalidate(body)


@router.post("/api/cache/purge", response_model=CacheDeleteResponse, tags=["Cache"])
async def purge_cache(handler: CacheHandler = Depends(get_cache_handler)):
    """만료 엔트리 삭제"""
    return await handler.purge()


# ============================================
# Health Check
# ============================================

@router.get("/health", tags=["Health"])
async def health_check(request: Request):
    """서버 상태 확인 (liveness probe)"""
    try:
        db = get_db(request.app.state.config.get("database", "default"))
        db_status = "connected" if db.pool.available > 0 else "busy"
    except DatabaseError:
        db_status = "disconnected"

    return {
        "status": "healthy",
        "database": db_status,
        "version": request.app.version,
    }


@router.get("/ready", tags=["Health"])
async def ready_check(request: Request):
    """DB 연결 상태 확인 (readiness probe)"""
    try:
        db = get_db(request.app.state.config.get("database", "default"))
        async with db.transaction(readonly=True) as ctx:
            await ctx.fetch_val("SELECT 1")
        return {"status": "ready", "database": "ok"}
    except DatabaseError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": e.message}
        )
