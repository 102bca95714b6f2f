import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from duejobs.domain.errors import PublishPermanentError, PublishTransientError
from duejobs.domain.models import JobRecord
from duejobs.domain.retry import calculate_backoff
from duejobs.domain.states import PublishOutcome
from duejobs.scheduler.config import EngineConfig
from duejobs.services.publisher import EventPublisher

from duejobs.api.v1.metrics import DISPATCH_DELAY, JOBS_DISPATCHED, PUBLISH_ATTEMPTS

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class PublishResult:
    outcome: PublishOutcome
    attempts: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == PublishOutcome.SUCCESS

class Dispatcher:
    """
    Publishes claimed jobs, retrying transient failures with backoff inside the tick.
    The caller owns the claim and decides what to do with the outcome.
    """

    def __init__(self, publisher: EventPublisher, config: EngineConfig):
        self.publisher = publisher
        self.config = config

    async def publish(self, job: JobRecord) -> PublishResult:
        attempts = 0
        while True:
            attempts += 1
            PUBLISH_ATTEMPTS.inc()
            try:
                await asyncio.wait_for(
                    self.publisher.publish(job.routing_key, job.payload, message_id=job.sort_key),
                    timeout=self.config.call_timeout_seconds
                )
            except PublishPermanentError as e:
                logger.error(f"Job {job.sort_key} rejected by event router: {e}")
                return PublishResult(PublishOutcome.PERMANENT_FAILURE, attempts, str(e))
            except (PublishTransientError, asyncio.TimeoutError) as e:
                reason = str(e) or f"publish timed out after {self.config.call_timeout_seconds}s"
                if attempts >= self.config.publish_max_attempts:
                    logger.warning(f"Job {job.sort_key} publish failed after {attempts} attempts: {reason}")
                    return PublishResult(PublishOutcome.TRANSIENT_FAILURE, attempts, reason)

                delay = calculate_backoff(
                    attempts,
                    self.config.publish_base_delay_seconds,
                    self.config.publish_max_delay_seconds
                )
                logger.warning(f"Job {job.sort_key} publish attempt {attempts} failed ({reason}), retrying in {delay:.2f}s")
                await asyncio.sleep(delay)
                continue

            JOBS_DISPATCHED.inc()
            delay = (datetime.now(timezone.utc) - job.due_time).total_seconds()
            if delay >= 0:
                DISPATCH_DELAY.observe(delay)
            return PublishResult(PublishOutcome.SUCCESS, attempts)
