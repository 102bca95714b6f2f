from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from duejobs.db.models import ScheduledJob, DeadLetter

async def dead_letter_job(
    session: AsyncSession,
    partition_key: str,
    sort_key: str,
    owner_token: str,
    reason: str,
    attempts: int,
    now: datetime
) -> bool:
    """
    Moves a job we hold the claim on into dead_letters.
    Delete and insert share the caller's transaction, so the job is either
    still scheduled (claim mismatch, returns False) or only dead-lettered.
    """
    # 1. Conditional delete, returning the row we removed
    stmt = (
        delete(ScheduledJob)
        .where(
            ScheduledJob.partition_key == partition_key,
            ScheduledJob.sort_key == sort_key,
            ScheduledJob.claim_owner == owner_token
        )
        .returning(
            ScheduledJob.due_time,
            ScheduledJob.routing_key,
            ScheduledJob.payload
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    removed = result.one_or_none()

    if removed is None:
        return False

    # 2. Record it in the dead-letter table
    session.add(DeadLetter(
        partition_key=partition_key,
        sort_key=sort_key,
        due_time=removed.due_time,
        routing_key=removed.routing_key,
        payload=removed.payload,
        reason=reason,
        attempts=attempts,
        dead_lettered_at=now
    ))
    await session.flush()
    return True
