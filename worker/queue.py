"""
JobQueue: 내구성 있는 알림 잡 큐

notification_jobs 테이블 위에서 동작하며, 여러 워커가 같은 DB를 공유해도
한 잡은 동시에 한 워커만 점유합니다.

상태 전이:
    PENDING --claim--> PROCESSING --success--> SENT
    PROCESSING --failure, attempts < max--> PENDING (backoff 후 재시도)
    PROCESSING --failure, attempts >= max--> FAILED
    PROCESSING --lock stale, attempts + 1 < max, 재점유--> PROCESSING (새 토큰)
    PROCESSING --lock stale, attempts + 1 >= max--> FAILED ('lock expired')
    FAILED --reset (운영자)--> PENDING

사용 예시:
    queue = JobQueue(QueueConfig())
    job_id = await queue.enqueue("AUTO_CONVERT_RANGES_SUMMARY", {"acciones": []})

    job = await queue.claim_next(lock_owner="worker-1")
    if job:
        ...
        await queue.complete_success(job.id, job.lock_owner)
"""

import json
import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable

from aiosql.queries import Queries

from common.clock import Clock, to_db_time, utcnow
from common.exception import StoreUnavailableError, ValidationError
from database import DatabaseError, get_db
from worker.base import is_registered
from worker.exception import JobNotFoundError, JobStatusError, OwnershipLostError
from worker.model import Job, JobStatus, QueueConfig, MIN_ATTEMPTS, MAX_ATTEMPTS
from worker.retry import next_attempt_time

logger = logging.getLogger(__name__)

SQL_PATH = Path(__file__).parent / "sql" / "worker.sql"


def new_lock_owner(prefix: str = "worker") -> str:
    """워커별 락 소유자 접두어 (claim마다 고유 토큰이 덧붙음)"""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class JobQueue:
    """
    알림 잡 큐

    모든 상태 변경은 조건부 UPDATE 한 번(또는 소유권 검증 후 UPDATE)으로 처리합니다.
    DB 오류는 StoreUnavailableError로 전파됩니다.
    """

    def __init__(
        self,
        config: QueueConfig | None = None,
        job_types: Iterable[str] | None = None,
        clock: Clock = utcnow,
    ):
        """
        Args:
            config: 큐 설정
            job_types: 허용할 잡 type 목록 (None이면 등록된 핸들러 기준)
            clock: 현재 시각 함수 (테스트에서 교체)
        """
        self._config = config or QueueConfig()
        self._job_types = set(job_types) if job_types is not None else None
        self._clock = clock

    @property
    def config(self) -> QueueConfig:
        return self._config

    def _get_queries(self) -> Queries:
        db = get_db(self._config.database)
        queries = db.get_queries('worker')
        if queries is None:
            queries = db.load_queries('worker', str(SQL_PATH))
        return queries

    def _is_known_type(self, job_type: str) -> bool:
        if self._job_types is not None:
            return job_type in self._job_types
        return is_registered(job_type)

    # ------------------------------------------------------------
    # enqueue
    # ------------------------------------------------------------

    async def enqueue(
        self,
        job_type: str,
        payload: Any = None,
        max_attempts: int | None = None,
        not_before: datetime | None = None,
    ) -> str:
        """
        잡 등록

        Args:
            job_type: 처리 핸들러 type
            payload: JSON 직렬화 가능한 데이터 (큐는 내용을 해석하지 않음)
            max_attempts: 최대 시도 횟수 (1~20, 기본값은 설정)
            not_before: 이 시각 이전에는 점유되지 않음 (기본 now)

        Returns:
            생성된 잡 ID

        Raises:
            ValidationError: 알 수 없는 type, 범위를 벗어난 max_attempts, 직렬화 불가 payload
        """
        if not job_type or not self._is_known_type(job_type):
            raise ValidationError("type", f"unrecognized job type '{job_type}'")

        if max_attempts is None:
            max_attempts = self._config.default_max_attempts
        if not MIN_ATTEMPTS <= max_attempts <= MAX_ATTEMPTS:
            raise ValidationError(
                "max_attempts", f"{max_attempts} is out of range {MIN_ATTEMPTS}-{MAX_ATTEMPTS}"
            )

        try:
            payload_str = json.dumps(payload if payload is not None else {})
        except (TypeError, ValueError) as e:
            raise ValidationError("payload", f"not JSON serializable ({e})")

        now = self._clock()
        job_id = uuid.uuid4().hex

        await self._run(
            "enqueue",
            lambda queries, conn: queries.insert_job(
                conn,
                id=job_id,
                type=job_type,
                payload=payload_str,
                max_attempts=max_attempts,
                next_attempt_at=to_db_time(not_before or now),
                now=to_db_time(now),
            ),
        )

        logger.info(
            f"Enqueued job: id={job_id}, type={job_type}, max_attempts={max_attempts}"
        )
        return job_id

    # ------------------------------------------------------------
    # claim / complete
    # ------------------------------------------------------------

    async def claim_next(self, lock_owner: str, job_type: str | None = None) -> Job | None:
        """
        점유 가능한 잡 하나를 원자적으로 PROCESSING 전환

        (next_attempt_at, created_at) 오름차순으로 가장 먼저 준비된 잡을 고릅니다.
        락이 stale_lock_seconds 이상 유지된 PROCESSING 잡은 버려진 것으로 보고 재점유하며,
        버려진 시도도 attempts에 포함됩니다. 그 시도로 재시도가 소진되면 재점유 대신
        FAILED(last_error='lock expired')로 전환합니다.

        lock_owner는 접두어이며, 실제 락 토큰은 claim마다 새로 발급되어
        반환된 job.lock_owner에 담깁니다. complete_*에는 이 토큰을 넘겨야 합니다.

        Returns:
            점유한 잡, 없으면 None
        """
        current = self._clock()
        now = to_db_time(current)
        stale_before = to_db_time(current - timedelta(seconds=self._config.stale_lock_seconds))
        token = f"{lock_owner}-{uuid.uuid4().hex[:8]}"

        async def claim(queries: Queries, conn: Any) -> tuple[int, Any]:
            expired = await queries.expire_stale_jobs(conn, now=now, stale_before=stale_before)
            row = await queries.claim_next_job(
                conn,
                now=now,
                stale_before=stale_before,
                lock_owner=token,
                job_type=job_type,
            )
            return expired or 0, row

        expired, row = await self._run("claim_next", claim)
        if expired:
            logger.warning(f"Expired stale jobs: count={expired}, reason=lock expired")
        if row is None:
            return None

        job = Job.from_row(row)
        logger.info(
            f"Claimed job: id={job.id}, type={job.type}, lock_owner={token}, "
            f"attempt={job.attempts + 1}/{job.max_attempts}"
        )
        return job

    async def complete_success(self, job_id: str, lock_owner: str) -> bool:
        """
        PROCESSING -> SENT

        Returns:
            True: 완료 처리됨
            False: 락을 잃어 아무 것도 하지 않음
        """
        now = to_db_time(self._clock())

        async def mark_sent(queries: Queries, conn: Any) -> None:
            affected = await queries.mark_sent(conn, id=job_id, lock_owner=lock_owner, now=now)
            if not affected:
                raise OwnershipLostError(job_id, lock_owner)

        try:
            await self._run("complete_success", mark_sent)
        except OwnershipLostError as e:
            logger.warning(f"complete_success ignored: {e}")
            return False

        logger.info(f"Job sent: id={job_id}")
        return True

    async def complete_failure(self, job_id: str, lock_owner: str, error_message: str) -> bool:
        """
        실패 처리: attempts 증가 후 재시도 예약 또는 FAILED 전환

        Returns:
            True: 상태 반영됨
            False: 락을 잃어 아무 것도 하지 않음
        """
        error = (error_message or "unknown error")[:self._config.max_error_length]

        async def fail(queries: Queries, conn: Any) -> str:
            row = await queries.get_owned_job(conn, id=job_id, lock_owner=lock_owner)
            if row is None:
                raise OwnershipLostError(job_id, lock_owner)

            now = self._clock()
            expected = row["attempts"]
            attempts = expected + 1

            if attempts >= row["max_attempts"]:
                affected = await queries.mark_failed(
                    conn,
                    id=job_id,
                    lock_owner=lock_owner,
                    attempts=attempts,
                    expected_attempts=expected,
                    last_error=error,
                    now=to_db_time(now),
                )
                if not affected:
                    raise OwnershipLostError(job_id, lock_owner)
                return f"FAILED (attempts={attempts}/{row['max_attempts']})"

            retry_at = next_attempt_time(
                now,
                attempts,
                self._config.base_delay_seconds,
                self._config.max_delay_seconds,
                self._config.jitter_seconds,
            )
            affected = await queries.schedule_retry(
                conn,
                id=job_id,
                lock_owner=lock_owner,
                attempts=attempts,
                expected_attempts=expected,
                next_attempt_at=to_db_time(retry_at),
                last_error=error,
                now=to_db_time(now),
            )
            if not affected:
                raise OwnershipLostError(job_id, lock_owner)
            return (
                f"PENDING (attempts={attempts}/{row['max_attempts']}, "
                f"next_attempt_at={retry_at.isoformat()})"
            )

        try:
            outcome = await self._run("complete_failure", fail)
        except OwnershipLostError as e:
            logger.warning(f"complete_failure ignored: {e}")
            return False

        logger.warning(f"Job failed: id={job_id}, next={outcome}, error={error}")
        return True

    # ------------------------------------------------------------
    # 운영자 조회 / 수동 재시도
    # ------------------------------------------------------------

    async def get(self, job_id: str) -> Job:
        """ID로 잡 조회"""
        row = await self._run(
            "get",
            lambda queries, conn: queries.get_job_by_id(conn, id=job_id),
            readonly=True,
        )
        if row is None:
            raise JobNotFoundError(job_id)
        return Job.from_row(row)

    async def get_list(
        self,
        status: JobStatus | str | None = None,
        job_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """
        잡 목록 조회 (최신순)

        Returns:
            (잡 목록, 전체 건수)
        """
        status_value = JobStatus(status).value if status else None

        async def fetch(queries: Queries, conn: Any) -> tuple[list[Any], int]:
            rows = await queries.get_jobs_paged(
                conn, status=status_value, job_type=job_type, limit=limit, offset=offset
            )
            total = await queries.count_jobs(conn, status=status_value, job_type=job_type)
            return list(rows), total or 0

        rows, total = await self._run("list", fetch, readonly=True)
        return [Job.from_row(row) for row in rows], total

    async def count(self, status: JobStatus | str | None = None, job_type: str | None = None) -> int:
        status_value = JobStatus(status).value if status else None
        total = await self._run(
            "count",
            lambda queries, conn: queries.count_jobs(conn, status=status_value, job_type=job_type),
            readonly=True,
        )
        return total or 0

    async def counts(self) -> dict[str, int]:
        """상태별 잡 건수"""
        rows = await self._run(
            "counts",
            lambda queries, conn: queries.count_jobs_by_status(conn),
            readonly=True,
        )
        result = {status.value: 0 for status in JobStatus}
        for row in rows:
            result[row["status"]] = row["cnt"]
        return result

    async def reset(self, job_id: str) -> Job:
        """
        FAILED 잡을 PENDING으로 되돌림 (attempts 초기화)

        Raises:
            JobNotFoundError: 잡이 없음
            JobStatusError: FAILED가 아님
        """
        now = to_db_time(self._clock())

        async def reset_job(queries: Queries, conn: Any) -> Any:
            row = await queries.get_job_by_id(conn, id=job_id)
            if row is None:
                raise JobNotFoundError(job_id)
            if row["status"] != JobStatus.FAILED.value:
                raise JobStatusError(job_id, row["status"])
            await queries.reset_failed_job(conn, id=job_id, now=now)
            return await queries.get_job_by_id(conn, id=job_id)

        row = await self._run("reset", reset_job)
        logger.info(f"Reset job: id={job_id}")
        return Job.from_row(row)

    # ------------------------------------------------------------
    # 내부
    # ------------------------------------------------------------

    async def _run(self, operation: str, func, readonly: bool = False) -> Any:
        """트랜잭션 안에서 쿼리 실행, DB 오류는 StoreUnavailableError로 변환"""
        try:
            queries = self._get_queries()
            db = get_db(self._config.database)
            async with db.transaction(readonly=readonly) as ctx:
                return await func(queries, ctx.connection)
        except DatabaseError as e:
            logger.error(f"Store error during {operation}: {e}")
            raise StoreUnavailableError(operation, e) from e
