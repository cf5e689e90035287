"""
Admin API 테스트

테스트 항목:
1. 잡 등록 (201) / 잘못된 요청 400
2. 잡 목록 조회 (페이징, 상태 필터)
3. 존재하지 않는 잡 404
4. 잡 재시도 기능 (FAILED -> PENDING, 그 외 409)
5. 상태별 건수 응답 캐시
6. 트리거 토큰 검사 (401)
7. 캐시 관리 API (stats, invalidate, purge)
8. health / ready, 저장소 장애 시 503

실행: python -m pytest test/admin_test.py -v
"""

import logging
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from database.registry import DatabaseRegistry
from admin.main import create_app
from worker.base import BaseHandler, HandlerResult, handler
from worker.model import Job

# 테스트용 로깅 설정
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

TOKEN = "admin-test-token"


@handler("ADMIN_TEST_OK")
class OkHandler(BaseHandler):
    async def execute(self, job: Job) -> HandlerResult:
        return HandlerResult(action="send", count=1)


@handler("ADMIN_TEST_FAIL")
class FailHandler(BaseHandler):
    async def execute(self, job: Job) -> HandlerResult:
        raise RuntimeError("provider timeout")


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def test_config(tmp_path):
    """테스트용 병합 설정 (임시 SQLite 파일)"""
    return {
        'databases': {
            'default': {'type': 'sqlite3', 'path': str(tmp_path / "admin.db"), 'pool': {'pool_size': 5}}
        },
        'admin': {'database': 'default', 'trigger_token': TOKEN, 'stats_ttl_seconds': 30},
        'queue': {'base_delay_seconds': 1, 'max_delay_seconds': 10, 'jitter_seconds': 0},
        'cache': {'default_ttl_seconds': 60},
        'worker': {'handler_timeout_seconds': 5},
    }


@pytest_asyncio.fixture
async def database(test_config):
    """테스트용 Database 인스턴스 (DatabaseRegistry 사용)"""
    DatabaseRegistry.clear()

    await DatabaseRegistry.init_from_config(test_config)
    yield get_db('default')
    await DatabaseRegistry.close_all()


@pytest_asyncio.fixture
async def client(database, test_config):
    """테스트용 HTTP 클라이언트"""
    # Database가 이미 초기화되어 있으므로 lifespan 없이 요청 처리
    transport = ASGITransport(app=create_app(test_config))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def create_job(client, job_type: str = "ADMIN_TEST_OK", **extra) -> str:
    response = await client.post("/api/jobs", json={"type": job_type, "payload": {"to": "ops"}, **extra})
    assert response.status_code == 201
    return response.json()["id"]


def auth() -> dict:
    return {"Authorization": f"Bearer {TOKEN}"}


# ============================================================
# 잡 API
# ============================================================

class TestJobAPI:
    """잡 등록/조회 테스트"""

    @pytest.mark.asyncio
    async def test_create_job(self, client):
        """잡 등록"""
        job_id = await create_job(client)

        response = await client.get(f"/api/jobs/{job_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == job_id
        assert data["status"] == "PENDING"
        assert data["attempts"] == 0
        assert data["max_attempts"] == 5
        assert data["payload"] == {"to": "ops"}

    @pytest.mark.asyncio
    async def test_create_job_unknown_type(self, client):
        """등록되지 않은 type은 400"""
        response = await client.post("/api/jobs", json={"type": "NO_SUCH_TYPE"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_job_invalid_max_attempts(self, client):
        """max_attempts 범위 밖은 400"""
        response = await client.post("/api/jobs", json={"type": "ADMIN_TEST_OK", "max_attempts": 21})
        assert response.status_code == 400

        response = await client.post("/api/jobs", json={"type": "ADMIN_TEST_OK", "max_attempts": 0})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_job_missing_type(self, client):
        """type 누락은 요청 검증 오류"""
        response = await client.post("/api/jobs", json={"payload": {}})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_jobs(self, client):
        """잡 목록 조회 (페이징)"""
        for _ in range(3):
            await create_job(client)

        response = await client.get("/api/jobs", params={"page": 1, "size": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert len(data["items"]) == 2
        assert data["pages"] == 2

    @pytest.mark.asyncio
    async def test_get_jobs_status_filter(self, client):
        """상태 필터"""
        await create_job(client)

        response = await client.get("/api/jobs", params={"status": "FAILED"})
        assert response.status_code == 200
        assert response.json()["total"] == 0

        response = await client.get("/api/jobs", params={"status": "UNKNOWN"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, client):
        """존재하지 않는 잡 404"""
        response = await client.get("/api/jobs/does-not-exist")
        assert response.status_code == 404


class TestJobReset:
    """잡 재시도 테스트"""

    @pytest.mark.asyncio
    async def test_reset_failed_job(self, client):
        """FAILED 잡 재시도"""
        job_id = await create_job(client, "ADMIN_TEST_FAIL", max_attempts=1)

        response = await client.post("/api/jobs/process", headers=auth())
        assert response.json()["job"]["status"] == "FAILED"

        response = await client.post(f"/api/jobs/{job_id}/reset")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["attempts"] == 0
        assert data["last_error"] is None

    @pytest.mark.asyncio
    async def test_reset_pending_job_conflict(self, client):
        """FAILED가 아닌 잡은 409"""
        job_id = await create_job(client)

        response = await client.post(f"/api/jobs/{job_id}/reset")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_reset_not_found(self, client):
        response = await client.post("/api/jobs/does-not-exist/reset")
        assert response.status_code == 404


class TestJobStats:
    """상태별 건수 응답 캐시 테스트"""

    @pytest.mark.asyncio
    async def test_stats(self, client):
        await create_job(client)
        await create_job(client)

        response = await client.get("/api/jobs/stats")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-store"
        data = response.json()
        assert data["counts"]["PENDING"] == 2
        assert data["total"] == 2

    @pytest.mark.asyncio
    async def test_stats_served_from_cache(self, client):
        """TTL 안에서는 같은 응답 반환"""
        await create_job(client)
        first = (await client.get("/api/jobs/stats")).json()

        await create_job(client)
        second = (await client.get("/api/jobs/stats")).json()

        assert second == first
        assert second["total"] == 1

        # 캐시 삭제 후에는 새로 계산
        response = await client.post("/api/cache/invalidate", json={"path_prefix": "/api/jobs/stats"})
        assert response.json()["deleted"] == 1

        third = (await client.get("/api/jobs/stats")).json()
        assert third["total"] == 2


class TestProcessTrigger:
    """트리거 엔드포인트 테스트"""

    @pytest.mark.asyncio
    async def test_process_requires_token(self, client):
        """토큰 없거나 틀리면 401"""
        response = await client.post("/api/jobs/process")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

        response = await client.get("/api/jobs/process", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_process_empty_queue(self, client):
        response = await client.get("/api/jobs/process", headers=auth())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["job"] is None
        assert data["message"] == "No pending jobs to process"

    @pytest.mark.asyncio
    async def test_process_success(self, client):
        job_id = await create_job(client)

        response = await client.post("/api/jobs/process", headers=auth())

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Job processed and sent"
        assert data["job"]["id"] == job_id
        assert data["job"]["status"] == "SENT"
        assert data["job"]["attempts"] == 1

    @pytest.mark.asyncio
    async def test_process_failure_schedules_retry(self, client):
        """핸들러 실패도 요청은 200, 잡은 재시도 예약"""
        job_id = await create_job(client, "ADMIN_TEST_FAIL", max_attempts=3)

        response = await client.post("/api/jobs/process", headers=auth())

        assert response.status_code == 200
        data = response.json()
        assert data["message"].startswith("Job failed, retry scheduled at")
        assert data["job"]["status"] == "PENDING"

        job = (await client.get(f"/api/jobs/{job_id}")).json()
        assert job["attempts"] == 1
        assert "provider timeout" in job["last_error"]

    @pytest.mark.asyncio
    async def test_process_without_configured_token(self, database, test_config):
        """trigger_token 미설정 시 인증 없이 허용"""
        test_config['admin']['trigger_token'] = None
        transport = ASGITransport(app=create_app(test_config))
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post("/api/jobs/process")
        assert response.status_code == 200


# ============================================================
# 캐시 API
# ============================================================

class TestCacheAPI:
    """캐시 관리 API 테스트"""

    @pytest.mark.asyncio
    async def test_cache_stats(self, client):
        response = await client.get("/api/cache/stats")
        assert response.status_code == 200
        assert response.json() == {"total": 0, "live": 0, "expired": 0}

        await client.get("/api/jobs/stats")

        response = await client.get("/api/cache/stats")
        assert response.json()["total"] == 1
        assert response.json()["live"] == 1

    @pytest.mark.asyncio
    async def test_cache_invalidate_no_match(self, client):
        await client.get("/api/jobs/stats")

        response = await client.post("/api/cache/invalidate", json={"path_prefix": "/api/other"})
        assert response.status_code == 200
        assert response.json()["deleted"] == 0

    @pytest.mark.asyncio
    async def test_cache_purge(self, client):
        """만료 전 엔트리는 삭제하지 않음"""
        await client.get("/api/jobs/stats")

        response = await client.post("/api/cache/purge")
        assert response.status_code == 200
        assert response.json()["deleted"] == 0


# ============================================================
# Health Check
# ============================================================

class TestHealth:
    """health / ready 테스트"""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["version"] == "1.0.0"

    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "ready", "database": "ok"}

    @pytest.mark.asyncio
    async def test_store_unavailable(self, client, database):
        """DB 커넥션풀이 닫히면 503"""
        await database.pool.close()

        response = await client.get("/api/jobs")
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "STORE_UNAVAILABLE"

        response = await client.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not ready"


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
