import logging
from datetime import datetime

from duejobs.domain.models import JobRecord
from duejobs.scheduler.config import EngineConfig
from duejobs.store.base import JobStore
from duejobs.utils.calls import call_store

from duejobs.api.v1.metrics import DELETE_RACE_LOST

logger = logging.getLogger(__name__)

class CleanupCoordinator:
    """
    Removes jobs once their dispatch is settled, always conditional on our claim.
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

    async def confirm_and_delete(self, job: JobRecord, owner_token: str) -> bool:
        """
        Deletes a published job if `owner_token` still holds its claim.

        False means the claim expired during publish and another tick took the
        job over; the record is left for that owner (it will be published
        again, which at-least-once allows).
        """
        # Guarded on owner only; a lapsed claim nobody re-took can still be settled
        deleted = await self._call(self.store.delete, job.partition_key, job.sort_key, owner_token)
        if not deleted:
            DELETE_RACE_LOST.inc()
            logger.info(f"Job {job.sort_key} changed owner during publish; leaving it to the new claim")
        return deleted

    async def dead_letter(self, job: JobRecord, owner_token: str, reason: str, attempts: int, now: datetime) -> bool:
        """
        Moves an unpublishable job out of the scheduled table so no later tick
        picks it up again. Conditional on our claim like confirm_and_delete.
        """
        moved = await self._call(
            self.store.dead_letter, job.partition_key, job.sort_key, owner_token, reason, attempts, now
        )
        if moved:
            logger.error(f"Job {job.sort_key} (routing_key={job.routing_key}) dead-lettered: {reason}")
        else:
            logger.info(f"Job {job.sort_key} changed owner before dead-lettering; leaving it to the new claim")
        return moved
