import logging
from datetime import datetime, timedelta
from typing import Optional

from duejobs.domain.bucket import due_upper_bound, partitions_between, to_utc
from duejobs.domain.models import JobRecord
from duejobs.scheduler.config import EngineConfig
from duejobs.store.base import JobStore
from duejobs.utils.calls import call_store

logger = logging.getLogger(__name__)

class DueJobQuery:
    """
    Finds due jobs by range-scanning only the partitions that can hold them.

    The window is [now - lookback, now], one partition per bucket width,
    including the bucket `now` is still inside. Jobs older than the window are
    not seen; lookback has to exceed the worst gap between ticks.
    """

    def __init__(self, store: JobStore, config: EngineConfig):
        self.store = store
        self.config = config

    def candidate_partitions(self, now: datetime, lookback: Optional[timedelta] = None) -> list[str]:
        window = lookback if lookback is not None else self.config.lookback
        return partitions_between(
            now - window,
            now,
            self.config.bucket_width_seconds,
            self.config.partition_prefix,
            self.config.key_separator,
        )

    async def find_due(self, now: datetime, lookback: Optional[timedelta] = None) -> list[JobRecord]:
        """
        Returns every job with due_time <= now in the scanned window, oldest first,
        capped at max_jobs_per_tick. Raises StoreUnavailableError if a scan keeps failing.
        """
        now = to_utc(now)
        upper = due_upper_bound(now, self.config.key_separator)
        cap = self.config.max_jobs_per_tick

        due: list[JobRecord] = []
        # Partitions come out oldest first and keys sort by time, so the first
        # `cap` collected are also the oldest `cap`.
        for partition_key in self.candidate_partitions(now, lookback):
            after = None
            while len(due) < cap:
                page_size = min(self.config.scan_page_size, cap - len(due))
                page = await call_store(
                    self.store.scan,
                    partition_key,
                    upper,
                    after=after,
                    limit=page_size,
                    timeout=self.config.call_timeout_seconds,
                    max_attempts=self.config.store_max_attempts,
                    base_delay_seconds=self.config.store_base_delay_seconds,
                )
                due.extend(page)
                if len(page) < page_size:
                    break
                after = page[-1].sort_key

            if len(due) >= cap:
                logger.warning(f"Due job cap of {cap} reached at partition {partition_key}; remainder left for the next tick")
                break

        due.sort(key=lambda j: j.sort_key)
        return due
