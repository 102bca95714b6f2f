"""JobStore contract the scheduling engine depends on."""
from datetime import datetime
from typing import Optional, Protocol

from duejobs.domain.models import DeadLetterRecord, JobRecord


class JobStore(Protocol):
    """
    Persistent keyed store of scheduled jobs.

    Every mutating call is conditional and executed atomically by the store;
    the engine never reads a claim, decides, then writes it back. Implementations
    raise StoreUnavailableError for transient infrastructure failures.
    """

    async def put(self, job: JobRecord) -> None: ...

    async def get(self, partition_key: str, sort_key: str) -> Optional[JobRecord]: ...

    async def scan(
        self,
        partition_key: str,
        upper_bound: str,
        *,
        after: Optional[str] = None,
        limit: int = 100,
    ) -> list[JobRecord]:
        """Jobs in `partition_key` with after < sort_key < upper_bound, ascending."""
        ...

    async def claim(
        self,
        partition_key: str,
        sort_key: str,
        owner_token: str,
        now: datetime,
        expires_at: datetime,
    ) -> bool:
        """Set the claim if the job has none or an expired one."""
        ...

    async def release(self, partition_key: str, sort_key: str, owner_token: str) -> bool:
        """Clear the claim if `owner_token` holds it."""
        ...

    async def delete(self, partition_key: str, sort_key: str, owner_token: str) -> bool:
        """Delete the job if `owner_token` holds the claim."""
        ...

    async def dead_letter(
        self,
        partition_key: str,
        sort_key: str,
        owner_token: str,
        reason: str,
        attempts: int,
        now: datetime,
    ) -> bool:
        """Atomically move the job to the dead-letter table if `owner_token` holds the claim."""
        ...

    async def list_dead_letters(self, limit: int = 100) -> list[DeadLetterRecord]: ...
