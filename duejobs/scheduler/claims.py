import logging
from datetime import datetime, timedelta
from typing import Optional

from duejobs.domain.models import JobRecord
from duejobs.scheduler.config import EngineConfig
from duejobs.store.base import JobStore
from duejobs.utils.calls import call_store

from duejobs.api.v1.metrics import CLAIM_CONFLICTS

logger = logging.getLogger(__name__)

class ClaimCoordinator:
    """
    Lease-based claims so at most one dispatch attempt per job is in flight.

    The claim is a compare-and-swap in the store, never an in-process lock:
    ticks in different processes see the same claim columns. A crashed owner's
    claim simply expires after the TTL.
    """

    def __init__(self, store: JobStore, config: EngineConfig):
        self.store = store
        self.config = config

    async def _call(self, fn, *args):
        return await call_store(
            fn,
            *args,
            timeout=self.config.call_timeout_seconds,
            max_attempts=self.config.store_max_attempts,
            base_delay_seconds=self.config.store_base_delay_seconds,
        )

    async def try_claim(
        self,
        job: JobRecord,
        owner_token: str,
        now: datetime,
        ttl: Optional[timedelta] = None
    ) -> bool:
        """
        Claims `job` for `owner_token` until now + ttl.
        Returns False, without side effects, while someone else's claim is live.
        """
        expires_at = now + (ttl if ttl is not None else self.config.claim_ttl)
        claimed = await self._call(
            self.store.claim, job.partition_key, job.sort_key, owner_token, now, expires_at
        )
        if not claimed:
            CLAIM_CONFLICTS.inc()
            logger.debug(f"Job {job.sort_key} is claimed by another owner, skipping")
        return claimed

    async def release(self, job: JobRecord, owner_token: str) -> bool:
        """Gives the job back for the next tick. No-op if the claim is no longer ours."""
        released = await self._call(self.store.release, job.partition_key, job.sort_key, owner_token)
        if not released:
            logger.info(f"Claim on job {job.sort_key} already passed on; nothing to release")
        return released
