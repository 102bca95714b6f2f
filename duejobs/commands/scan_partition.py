from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from duejobs.db.models import ScheduledJob

async def scan_partition(
    session: AsyncSession,
    partition_key: str,
    upper_bound: str,
    after: Optional[str] = None,
    limit: int = 100
) -> Sequence[ScheduledJob]:
    """
    Range scan inside one partition:
        partition_key = :pk AND sort_key < :upper_bound [AND sort_key > :after]
    ordered by sort_key. `after` is the exclusive start key for the next page.
    Served entirely by the (partition_key, sort_key) primary key.
    """
    stmt = select(ScheduledJob).where(
        ScheduledJob.partition_key == partition_key,
        ScheduledJob.sort_key < upper_bound
    )
    if after is not None:
        stmt = stmt.where(ScheduledJob.sort_key > after)

    stmt = stmt.order_by(ScheduledJob.sort_key.asc()).limit(limit)

    result = await session.execute(stmt)
    return result.scalars().all()
