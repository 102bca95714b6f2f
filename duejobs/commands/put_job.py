from sqlalchemy.ext.asyncio import AsyncSession

from duejobs.db.models import ScheduledJob
from duejobs.domain.bucket import to_utc
from duejobs.domain.models import JobRecord

async def put_job(session: AsyncSession, job: JobRecord) -> ScheduledJob:
    """
    Inserts a new, unclaimed job. Producer-side; the engine itself never creates jobs.
    Raises IntegrityError (from flush) if the key already exists.
    """
    row = ScheduledJob(
        partition_key=job.partition_key,
        sort_key=job.sort_key,
        due_time=to_utc(job.due_time),
        routing_key=job.routing_key,
        payload=job.payload,
        claim_owner=None,
        claim_expires_at=None,
    )
    session.add(row)
    await session.flush()
    return row
