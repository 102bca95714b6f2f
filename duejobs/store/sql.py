import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from duejobs.commands.claim_job import claim_job, release_claim
from duejobs.commands.dead_letter_job import dead_letter_job
from duejobs.commands.delete_job import delete_claimed_job
from duejobs.commands.put_job import put_job
from duejobs.commands.scan_partition import scan_partition
from duejobs.db.models import DeadLetter, ScheduledJob
from duejobs.domain.bucket import to_utc
from duejobs.domain.errors import DuplicateJobError, StoreUnavailableError
from duejobs.domain.models import Claim, DeadLetterRecord, JobRecord

logger = logging.getLogger(__name__)

# Connection-level failures: the store is unreachable, locked or throttling us
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, OSError, asyncio.TimeoutError)

def to_record(row: ScheduledJob) -> JobRecord:
    claim = None
    if row.claim_owner is not None and row.claim_expires_at is not None:
        claim = Claim(owner_token=row.claim_owner, expires_at=to_utc(row.claim_expires_at))
    return JobRecord(
        partition_key=row.partition_key,
        sort_key=row.sort_key,
        due_time=to_utc(row.due_time),
        routing_key=row.routing_key,
        payload=row.payload or {},
        claim=claim,
    )

def to_dead_letter_record(row: DeadLetter) -> DeadLetterRecord:
    return DeadLetterRecord(
        partition_key=row.partition_key,
        sort_key=row.sort_key,
        due_time=to_utc(row.due_time),
        routing_key=row.routing_key,
        payload=row.payload or {},
        reason=row.reason,
        attempts=row.attempts,
        dead_lettered_at=to_utc(row.dead_lettered_at),
    )

class SqlJobStore:
    """JobStore over SQLAlchemy. One short transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, op: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except TRANSIENT_DB_ERRORS as e:
            logger.warning(f"Store call {op} failed: {type(e).__name__}: {e}")
            raise StoreUnavailableError(f"{op}: {e}") from e

    async def put(self, job: JobRecord) -> None:
        try:
            async with self._transaction("put") as session:
                await put_job(session, job)
        except IntegrityError as e:
            raise DuplicateJobError(job.partition_key, job.sort_key) from e

    async def get(self, partition_key: str, sort_key: str) -> Optional[JobRecord]:
        async with self._transaction("get") as session:
            row = await session.get(ScheduledJob, (partition_key, sort_key))
            return to_record(row) if row else None

    async def scan(
        self,
        partition_key: str,
        upper_bound: str,
        *,
        after: Optional[str] = None,
        limit: int = 100,
    ) -> list[JobRecord]:
        async with self._transaction("scan") as session:
            rows = await scan_partition(session, partition_key, upper_bound, after=after, limit=limit)
            return [to_record(r) for r in rows]

    async def claim(
        self,
        partition_key: str,
        sort_key: str,
        owner_token: str,
        now: datetime,
        expires_at: datetime,
    ) -> bool:
        async with self._transaction("claim") as session:
            return await claim_job(
                session, partition_key, sort_key, owner_token, to_utc(now), to_utc(expires_at)
            )

    async def release(self, partition_key: str, sort_key: str, owner_token: str) -> bool:
        async with self._transaction("release") as session:
            return await release_claim(session, partition_key, sort_key, owner_token)

    async def delete(self, partition_key: str, sort_key: str, owner_token: str) -> bool:
        async with self._transaction("delete") as session:
            return await delete_claimed_job(session, partition_key, sort_key, owner_token)

    async def dead_letter(
        self,
        partition_key: str,
        sort_key: str,
        owner_token: str,
        reason: str,
        attempts: int,
        now: datetime,
    ) -> bool:
        async with self._transaction("dead_letter") as session:
            return await dead_letter_job(
                session, partition_key, sort_key, owner_token, reason, attempts, to_utc(now)
            )

    async def list_dead_letters(self, limit: int = 100) -> list[DeadLetterRecord]:
        async with self._transaction("list_dead_letters") as session:
            stmt = select(DeadLetter).order_by(DeadLetter.dead_lettered_at.desc()).limit(limit)
            rows = (await session.execute(stmt)).scalars().all()
            return [to_dead_letter_record(r) for r in rows]
