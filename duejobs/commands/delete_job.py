from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from duejobs.db.models import ScheduledJob

async def delete_claimed_job(
    session: AsyncSession,
    partition_key: str,
    sort_key: str,
    owner_token: str
) -> bool:
    """
    Deletes a dispatched job, conditional on the claim still being ours.

    If our claim expired mid-publish and another tick re-claimed the job,
    claim_owner no longer matches and nothing is deleted: the new owner
    finishes (and deletes) it.
    """
    stmt = (
        delete(ScheduledJob)
        .where(
            ScheduledJob.partition_key == partition_key,
            ScheduledJob.sort_key == sort_key,
            ScheduledJob.claim_owner == owner_token
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1
