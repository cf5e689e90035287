"""
WorkerPool / Executor 테스트

테스트 항목:
1. @handler 데코레이터 등록 테스트
2. get_handler() 테스트 (성공/실패)
3. Executor 성공 테스트 (SENT)
4. Executor 실패 테스트 (예외, HandlerResult 실패, 타임아웃, 핸들러 없음)
5. 연속 실패 후 FAILED (end-to-end)
6. WorkerPool 폴링 테스트
7. WorkerPool graceful shutdown 테스트
8. 같은 워커풀이 stale 잡을 재점유했을 때 이전 실행 결과 무시
9. AUTO_CONVERT_RANGES_SUMMARY 핸들러 테스트

실행: python -m pytest test/worker_test.py -v
"""

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from database.registry import DatabaseRegistry
from worker.base import (
    BaseHandler,
    handler,
    get_handler,
    get_registered_handlers,
    load_handlers,
    HandlerNotFoundError,
    HandlerResult,
)
from worker.executor import Executor
from worker.main import WorkerPool, WorkerConfig
from worker.model import Job, JobStatus, QueueConfig
from worker.queue import JobQueue

# 테스트용 로깅 설정
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class FakeClock:
    """테스트용 시계 (수동으로 시간 이동)"""

    def __init__(self):
        self.now = datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ============================================================
# 테스트용 핸들러
# ============================================================

executed: list[str] = []


@handler("WORKER_TEST_SUCCESS")
class SuccessHandler(BaseHandler):
    async def execute(self, job: Job) -> HandlerResult:
        executed.append(job.id)
        return HandlerResult(action="success", data=job.payload)


@handler("WORKER_TEST_RAISE")
class RaisingHandler(BaseHandler):
    async def execute(self, job: Job) -> HandlerResult:
        raise RuntimeError("smtp connection refused")


@handler("WORKER_TEST_REPORT_FAILURE")
class ReportFailureHandler(BaseHandler):
    async def execute(self, job: Job) -> HandlerResult:
        return HandlerResult(action="send", success=False, error="provider rejected message")


@handler("WORKER_TEST_SLOW")
class SlowHandler(BaseHandler):
    async def execute(self, job: Job) -> None:
        await asyncio.sleep(job.payload.get("sleep", 5))
        executed.append(job.id)


# ============================================================
# Fixtures
# ============================================================

@pytest_asyncio.fixture
async def database(tmp_path):
    """테스트용 Database 인스턴스 (DatabaseRegistry 사용)"""
    DatabaseRegistry.clear()

    config = {
        'databases': {
            'default': {'type': 'sqlite3', 'path': str(tmp_path / "worker.db"), 'pool': {'pool_size': 5}}
        }
    }
    await DatabaseRegistry.init_from_config(config)
    executed.clear()

    yield get_db('default')
    await DatabaseRegistry.close_all()


@pytest.fixture
def queue(database):
    return JobQueue(QueueConfig(base_delay_seconds=0.01, max_delay_seconds=0.05, jitter_seconds=0))


# ============================================================
# 핸들러 등록
# ============================================================

class TestHandlerRegistry:
    """핸들러 레지스트리 테스트"""

    def test_decorator_registers_handler(self):
        handlers = get_registered_handlers()
        assert handlers["WORKER_TEST_SUCCESS"] is SuccessHandler
        assert handlers["WORKER_TEST_RAISE"] is RaisingHandler

    def test_get_handler_returns_instance(self):
        assert isinstance(get_handler("WORKER_TEST_SUCCESS"), SuccessHandler)

    def test_get_handler_not_found(self):
        with pytest.raises(HandlerNotFoundError):
            get_handler("NO_SUCH_TYPE")

    def test_load_handlers_registers_job_modules(self):
        from worker.job.summary import AUTO_CONVERT_RANGES_SUMMARY, SummaryNotificationHandler

        load_handlers()
        assert get_registered_handlers()[AUTO_CONVERT_RANGES_SUMMARY] is SummaryNotificationHandler


# ============================================================
# Executor
# ============================================================

class TestExecutor:
    """잡 실행기 테스트"""

    @pytest.mark.asyncio
    async def test_execute_success(self, queue):
        """성공 시 SENT, sent_at 설정, 락 해제"""
        job_id = await queue.enqueue("WORKER_TEST_SUCCESS", {"to": "ops"})
        executor = Executor(queue, "exec-1")

        job = await executor.run_once()
        assert job.id == job_id
        assert executed == [job_id]

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.SENT
        assert stored.attempts == 1
        assert stored.sent_at is not None
        assert stored.locked_at is None
        assert stored.lock_owner is None

    @pytest.mark.asyncio
    async def test_run_once_empty(self, queue):
        assert await Executor(queue, "exec-1").run_once() is None

    @pytest.mark.asyncio
    async def test_execute_exception_schedules_retry(self, queue):
        job_id = await queue.enqueue("WORKER_TEST_RAISE", {})
        executor = Executor(queue, "exec-1")

        job = await executor.run_once()
        assert job.id == job_id

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.PENDING
        assert stored.attempts == 1
        assert stored.last_error == "smtp connection refused"

    @pytest.mark.asyncio
    async def test_execute_reported_failure(self, queue):
        """HandlerResult(success=False)도 실패로 처리"""
        job_id = await queue.enqueue("WORKER_TEST_REPORT_FAILURE", {})
        assert await Executor(queue, "exec-1").execute(await queue.claim_next("exec-1")) is False

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.PENDING
        assert stored.last_error == "provider rejected message"

    @pytest.mark.asyncio
    async def test_execute_timeout(self, queue):
        job_id = await queue.enqueue("WORKER_TEST_SLOW", {"sleep": 2})
        executor = Executor(queue, "exec-1", handler_timeout_seconds=0.1)

        await executor.run_once()

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.PENDING
        assert "timed out" in stored.last_error
        assert executed == []

    @pytest.mark.asyncio
    async def test_execute_handler_not_found(self, database):
        """등록 시점엔 허용됐지만 실행 시 핸들러가 없는 경우"""
        queue = JobQueue(QueueConfig(), job_types=["GONE"])
        job_id = await queue.enqueue("GONE", {}, max_attempts=1)

        await Executor(queue, "exec-1").run_once()

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.FAILED
        assert "Handler not found" in stored.last_error

    @pytest.mark.asyncio
    async def test_failures_end_in_failed(self, queue):
        """maxAttempts=3 잡이 매번 실패하면 FAILED, attempts 3, sent_at 없음"""
        job_id = await queue.enqueue("WORKER_TEST_RAISE", {}, max_attempts=3)
        executor = Executor(queue, "exec-1")

        for _ in range(3):
            while await executor.run_once() is None:
                await asyncio.sleep(0.02)

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.FAILED
        assert stored.attempts == 3
        assert stored.sent_at is None
        assert stored.last_error == "smtp connection refused"


# ============================================================
# WorkerPool
# ============================================================

class TestWorkerPool:
    """워커풀 테스트"""

    @pytest.mark.asyncio
    async def test_poll_and_assign(self, queue):
        """가용 워커 수만큼만 점유"""
        for _ in range(3):
            await queue.enqueue("WORKER_TEST_SLOW", {"sleep": 0.2})

        pool = WorkerPool(WorkerConfig(pool_size=2), queue)
        assert await pool._poll_and_assign() == 2
        assert pool.running_task_count == 2
        assert await pool._poll_and_assign() == 0

        await asyncio.sleep(0.5)
        assert pool.running_task_count == 0
        assert await pool._poll_and_assign() == 1
        await pool._wait_running_tasks()

    @pytest.mark.asyncio
    async def test_job_type_filter(self, queue):
        other_id = await queue.enqueue("WORKER_TEST_RAISE", {})
        target_id = await queue.enqueue("WORKER_TEST_SUCCESS", {})

        pool = WorkerPool(WorkerConfig(pool_size=5, job_types=["WORKER_TEST_SUCCESS"]), queue)
        assert await pool._poll_and_assign() == 1
        await pool._wait_running_tasks()

        assert (await queue.get(target_id)).status == JobStatus.SENT
        assert (await queue.get(other_id)).status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_start_processes_and_stops(self, queue):
        """start 루프가 잡을 처리하고 stop 시 실행 중 태스크를 기다린 후 종료"""
        job_ids = [await queue.enqueue("WORKER_TEST_SUCCESS", {"n": i}) for i in range(3)]
        slow_id = await queue.enqueue("WORKER_TEST_SLOW", {"sleep": 0.3})

        pool = WorkerPool(WorkerConfig(pool_size=5, poll_interval_seconds=0.05), queue)
        task = asyncio.create_task(pool.start())

        await asyncio.sleep(0.3)
        assert pool.is_running
        await pool.stop()
        await asyncio.wait_for(task, timeout=5)

        assert not pool.is_running
        for job_id in job_ids + [slow_id]:
            assert (await queue.get(job_id)).status == JobStatus.SENT

    @pytest.mark.asyncio
    async def test_shutdown_timeout_cancels_tasks(self, queue):
        job_id = await queue.enqueue("WORKER_TEST_SLOW", {"sleep": 5})

        pool = WorkerPool(
            WorkerConfig(pool_size=1, poll_interval_seconds=0.05, shutdown_timeout_seconds=0.1),
            queue,
        )
        task = asyncio.create_task(pool.start())
        await asyncio.sleep(0.1)
        await pool.stop()
        await asyncio.wait_for(task, timeout=5)

        # 결과를 기록하지 못한 잡은 PROCESSING으로 남고 stale 이후 재점유 대상
        assert (await queue.get(job_id)).status == JobStatus.PROCESSING
        assert executed == []

    @pytest.mark.asyncio
    async def test_reclaim_by_same_pool_ignores_late_result(self, database):
        """같은 워커풀이 stale 잡을 재점유하면 첫 실행의 늦은 결과는 반영되지 않음"""
        clock = FakeClock()
        queue = JobQueue(QueueConfig(jitter_seconds=0), clock=clock)
        job_id = await queue.enqueue("WORKER_TEST_RAISE", {})
        pool = WorkerPool(WorkerConfig(pool_size=2), queue)

        first = await pool._claim()
        clock.advance(700)
        second = await pool._claim()

        assert first.id == second.id == job_id
        assert first.lock_owner.startswith(pool.lock_owner)
        assert second.lock_owner.startswith(pool.lock_owner)
        assert first.lock_owner != second.lock_owner

        assert await queue.complete_failure(job_id, first.lock_owner, "late failure from A") is False
        await pool._execute_job(first)

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.lock_owner == second.lock_owner
        assert stored.attempts == 1
        assert stored.last_error is None

        await pool._execute_job(second)
        stored = await queue.get(job_id)
        assert stored.status == JobStatus.PENDING
        assert stored.attempts == 2
        assert stored.last_error == "smtp connection refused"


# ============================================================
# AUTO_CONVERT_RANGES_SUMMARY
# ============================================================

class FakeSender:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.summaries: list[tuple[str, list]] = []
        self.no_operations = 0

    async def send_summary(self, service, actions):
        if self.fail:
            raise ConnectionError("mail provider down")
        self.summaries.append((service, actions))

    async def send_no_operations(self):
        self.no_operations += 1


class TestSummaryHandler:
    """작업 요약 알림 핸들러 테스트"""

    @pytest.fixture
    def sender(self):
        from worker.job import summary

        fake = FakeSender()
        original = summary.get_sender()
        summary.set_sender(fake)
        yield fake
        summary.set_sender(original)

    @pytest.mark.asyncio
    async def test_groups_actions_by_service(self, database, sender):
        from worker.job.summary import AUTO_CONVERT_RANGES_SUMMARY

        queue = JobQueue(QueueConfig(), job_types=[AUTO_CONVERT_RANGES_SUMMARY])
        job_id = await queue.enqueue(AUTO_CONVERT_RANGES_SUMMARY, {
            "acciones": [
                {"symbol": "RGTI", "alertaTipo": "TraderCall"},
                {"symbol": "NVDA", "alertaTipo": "SmartMoney"},
                {"symbol": "AMD", "alertaTipo": "TraderCall"},
            ],
            "source": "auto-convert-ranges",
        })

        assert await Executor(queue, "exec-1").execute(await queue.claim_next("exec-1")) is True

        services = dict(sender.summaries)
        assert [a["symbol"] for a in services["TraderCall"]] == ["RGTI", "AMD"]
        assert [a["symbol"] for a in services["SmartMoney"]] == ["NVDA"]
        assert sender.no_operations == 0
        assert (await queue.get(job_id)).status == JobStatus.SENT

    @pytest.mark.asyncio
    async def test_no_operations_flag(self, database, sender):
        from worker.job.summary import AUTO_CONVERT_RANGES_SUMMARY

        queue = JobQueue(QueueConfig(), job_types=[AUTO_CONVERT_RANGES_SUMMARY])
        await queue.enqueue(AUTO_CONVERT_RANGES_SUMMARY, {"acciones": [], "sendNoOperations": True})
        await Executor(queue, "exec-1").run_once()

        assert sender.no_operations == 1
        assert sender.summaries == []

    @pytest.mark.asyncio
    async def test_nothing_to_send(self, database, sender):
        from worker.job.summary import AUTO_CONVERT_RANGES_SUMMARY

        queue = JobQueue(QueueConfig(), job_types=[AUTO_CONVERT_RANGES_SUMMARY])
        job_id = await queue.enqueue(AUTO_CONVERT_RANGES_SUMMARY, {"acciones": []})
        await Executor(queue, "exec-1").run_once()

        assert sender.no_operations == 0
        assert sender.summaries == []
        assert (await queue.get(job_id)).status == JobStatus.SENT

    @pytest.mark.asyncio
    async def test_sender_failure_retries(self, database, sender):
        from worker.job.summary import AUTO_CONVERT_RANGES_SUMMARY

        sender.fail = True
        queue = JobQueue(QueueConfig(), job_types=[AUTO_CONVERT_RANGES_SUMMARY])
        job_id = await queue.enqueue(AUTO_CONVERT_RANGES_SUMMARY, {
            "acciones": [{"symbol": "RGTI", "alertaTipo": "TraderCall"}],
        })
        await Executor(queue, "exec-1").run_once()

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.PENDING
        assert stored.attempts == 1
        assert stored.last_error == "mail provider down"

    @pytest.mark.asyncio
    async def test_invalid_payload_reported_as_failure(self, database, sender):
        """acciones가 목록이 아니면 발송 없이 실패 처리"""
        from worker.job.summary import AUTO_CONVERT_RANGES_SUMMARY

        queue = JobQueue(QueueConfig(), job_types=[AUTO_CONVERT_RANGES_SUMMARY])
        job_id = await queue.enqueue(AUTO_CONVERT_RANGES_SUMMARY, {"acciones": "RGTI"}, max_attempts=1)
        await Executor(queue, "exec-1").run_once()

        stored = await queue.get(job_id)
        assert stored.status == JobStatus.FAILED
        assert stored.last_error.startswith("invalid payload")
        assert sender.summaries == []


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
