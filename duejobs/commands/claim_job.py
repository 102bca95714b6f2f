from datetime import datetime

from sqlalchemy import update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from duejobs.db.models import ScheduledJob

async def claim_job(
    session: AsyncSession,
    partition_key: str,
    sort_key: str,
    owner_token: str,
    now: datetime,
    expires_at: datetime
) -> bool:
    """
    Compare-and-swap on the claim columns.

    UPDATE scheduled_jobs SET claim_owner=:owner, claim_expires_at=:expires
    WHERE pk/sk match
      AND (claim_owner IS NULL OR claim_expires_at <= :now OR claim_owner = :owner)

    The row is only touched if nobody else holds a live claim, so of several
    concurrent callers at most one sees rowcount == 1. Matching our own token
    keeps a retried claim (first response lost) from locking ourselves out.
    """
    stmt = (
        update(ScheduledJob)
        .where(
            ScheduledJob.partition_key == partition_key,
            ScheduledJob.sort_key == sort_key,
            or_(
                ScheduledJob.claim_owner.is_(None),
                ScheduledJob.claim_expires_at <= now,
                ScheduledJob.claim_owner == owner_token
            )
        )
        .values(claim_owner=owner_token, claim_expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1

async def release_claim(
    session: AsyncSession,
    partition_key: str,
    sort_key: str,
    owner_token: str
) -> bool:
    """
    Clears the claim only if `owner_token` still holds it.
    Returns False when the claim already passed to someone else (or the job is gone).
    """
    stmt = (
        update(ScheduledJob)
        .where(
            ScheduledJob.partition_key == partition_key,
            ScheduledJob.sort_key == sort_key,
            ScheduledJob.claim_owner == owner_token
        )
        .values(claim_owner=None, claim_expires_at=None)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1
