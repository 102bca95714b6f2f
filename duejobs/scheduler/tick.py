import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from duejobs.domain.bucket import to_utc
from duejobs.domain.errors import StoreUnavailableError
from duejobs.domain.models import JobRecord, TickSummary
from duejobs.domain.states import JobOutcome, PublishOutcome
from duejobs.scheduler.claims import ClaimCoordinator
from duejobs.scheduler.cleanup import CleanupCoordinator
from duejobs.scheduler.config import EngineConfig
from duejobs.scheduler.dispatcher import Dispatcher
from duejobs.scheduler.query import DueJobQuery
from duejobs.services.publisher import EventPublisher
from duejobs.store.base import JobStore

from duejobs.api.v1.metrics import JOB_FAILURES, TICK_DURATION, TICKS_TOTAL

logger = logging.getLogger(__name__)

class Tick:
    """
    One pass of the scheduling engine, run by the external trigger.

    1. Query due jobs in the lookback window (oldest first)
    2. Per job, in a bounded worker pool: claim -> publish -> delete | release | dead-letter
    3. Return a TickSummary

    Ticks hold no state between runs and may overlap each other freely;
    claims in the store are what keep two ticks off the same job.
    """

    def __init__(self, store: JobStore, publisher: EventPublisher, config: Optional[EngineConfig] = None):
        self.config = (config or EngineConfig()).validate()
        self.query = DueJobQuery(store, self.config)
        self.claims = ClaimCoordinator(store, self.config)
        self.dispatcher = Dispatcher(publisher, self.config)
        self.cleanup = CleanupCoordinator(store, self.config)

    async def on_tick(self, now: Optional[datetime] = None) -> TickSummary:
        started = time.monotonic()
        now = to_utc(now) if now is not None else datetime.now(timezone.utc)
        deadline = self.config.tick_deadline_seconds
        summary = TickSummary()

        # Claim timestamps follow the tick's clock forward while it runs
        def clock() -> datetime:
            return now + timedelta(seconds=time.monotonic() - started)

        # 1. Discover due jobs
        try:
            jobs = await asyncio.wait_for(self.query.find_due(now), timeout=deadline)
        except StoreUnavailableError as e:
            logger.error(f"Tick at {now.isoformat()} aborted: job store unavailable during scan: {e}")
            summary.aborted = True
            return self._finish(summary, started)
        except asyncio.TimeoutError:
            logger.error(f"Tick at {now.isoformat()} hit its {deadline}s deadline while scanning")
            summary.deadline_exceeded = True
            return self._finish(summary, started)

        summary.candidates = len(jobs)
        if not jobs:
            return self._finish(summary, started)

        # 2. Process, sequential per job, concurrent across jobs
        semaphore = asyncio.Semaphore(self.config.tick_concurrency)
        store_down = asyncio.Event()
        in_flight: set[tuple[str, str]] = set()

        async def run(job: JobRecord) -> Optional[JobOutcome]:
            async with semaphore:
                # Store went away mid-tick: stop starting new work
                if store_down.is_set():
                    return None
                in_flight.add(job.key)
                return await self.process_job(job, clock, store_down)

        tasks = {asyncio.create_task(run(job)): job for job in jobs}
        remaining = max(deadline - (time.monotonic() - started), 0)
        done, pending = await asyncio.wait(tasks.keys(), timeout=remaining)

        if pending:
            # Claims of cancelled jobs are not released: a publish may still
            # land after a release, so they run out via TTL instead.
            summary.deadline_exceeded = True
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in pending:
                if tasks[task].key in in_flight:
                    summary.failed += 1
                else:
                    summary.skipped += 1
            logger.warning(f"Tick at {now.isoformat()} hit its {deadline}s deadline with {len(pending)} jobs unfinished")

        # 3. Tally
        for task in done:
            outcome = task.result()
            if outcome == JobOutcome.DISPATCHED:
                summary.dispatched += 1
            elif outcome == JobOutcome.DEAD_LETTERED:
                summary.dead_lettered += 1
            elif outcome == JobOutcome.FAILED:
                summary.failed += 1
            else:
                summary.skipped += 1

        if store_down.is_set():
            summary.aborted = True
            logger.error(f"Tick at {now.isoformat()} stopped early: job store unavailable")

        return self._finish(summary, started)

    async def process_job(self, job: JobRecord, clock, store_down: asyncio.Event) -> JobOutcome:
        """
        Claim, publish and settle a single job. Never raises (except on
        cancellation); every failure stays contained to this job.
        """
        owner_token = uuid4().hex
        published = False
        try:
            if not await self.claims.try_claim(job, owner_token, clock()):
                return JobOutcome.SKIPPED

            result = await self.dispatcher.publish(job)

            if result.ok:
                published = True
                await self.cleanup.confirm_and_delete(job, owner_token)
                return JobOutcome.DISPATCHED

            if result.outcome == PublishOutcome.PERMANENT_FAILURE:
                JOB_FAILURES.labels(type="permanent").inc()
                moved = await self.cleanup.dead_letter(
                    job, owner_token, result.error or "rejected", result.attempts, clock()
                )
                return JobOutcome.DEAD_LETTERED if moved else JobOutcome.FAILED

            JOB_FAILURES.labels(type="transient").inc()
            await self.claims.release(job, owner_token)
            return JobOutcome.FAILED

        except StoreUnavailableError as e:
            store_down.set()
            JOB_FAILURES.labels(type="store").inc()
            if published:
                # Publish went out but the record stays; it is re-sent once the claim expires
                logger.warning(f"Job {job.sort_key} published but could not be deleted: {e}")
                return JobOutcome.DISPATCHED
            logger.warning(f"Job {job.sort_key} not processed, store unavailable: {e}")
            return JobOutcome.FAILED

        except Exception as e:
            # Claim (if any) is left to expire; we can't tell whether the publish happened
            JOB_FAILURES.labels(type="unexpected").inc()
            logger.error(f"Unexpected error processing job {job.sort_key}: {e}", exc_info=True)
            return JobOutcome.DISPATCHED if published else JobOutcome.FAILED

    def _finish(self, summary: TickSummary, started: float) -> TickSummary:
        elapsed = time.monotonic() - started
        TICK_DURATION.observe(elapsed)
        if summary.aborted:
            TICKS_TOTAL.labels(result="aborted").inc()
        elif summary.deadline_exceeded:
            TICKS_TOTAL.labels(result="deadline_exceeded").inc()
        else:
            TICKS_TOTAL.labels(result="completed").inc()

        logger.info(
            f"Tick finished in {elapsed:.2f}s: candidates={summary.candidates} dispatched={summary.dispatched} "
            f"failed={summary.failed} skipped={summary.skipped} dead_lettered={summary.dead_lettered}"
        )
        return summary
