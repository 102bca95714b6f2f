"""Shared test fixtures and factories."""

import os

# Keep the module-level engine in duejobs.db.session off Postgres during tests
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from duejobs.db.models import ScheduledJob, DeadLetter  # noqa: F401
from duejobs.db.session import Base, make_session_factory
from duejobs.domain.bucket import bucket, make_sort_key
from duejobs.domain.models import JobRecord
from duejobs.scheduler.config import EngineConfig
from duejobs.store.sql import SqlJobStore


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_job(
    due_time: datetime,
    routing_key: str = "reminders.email",
    payload: Optional[dict[str, Any]] = None,
    unique_id: Optional[str] = None,
    width_seconds: int = 300,
) -> JobRecord:
    return JobRecord(
        partition_key=bucket(due_time, width_seconds),
        sort_key=make_sort_key(due_time, unique_id),
        due_time=due_time,
        routing_key=routing_key,
        payload=payload if payload is not None else {"to": "someone@example.com"},
    )


class RecordingPublisher:
    """Publisher fake: records every publish, raises scripted errors per routing key."""

    def __init__(self):
        self.published: list[tuple[str, str, dict]] = []
        self.calls = 0
        self.failures: dict[str, list[Exception]] = {}

    def fail(self, routing_key: str, *errors: Exception) -> None:
        self.failures.setdefault(routing_key, []).extend(errors)

    async def publish(self, routing_key: str, payload: dict, *, message_id: str) -> None:
        self.calls += 1
        queued = self.failures.get(routing_key)
        if queued:
            raise queued.pop(0)
        self.published.append((message_id, routing_key, payload))

    @property
    def message_ids(self) -> list[str]:
        return [m for m, _, _ in self.published]


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
async def session_factory(tmp_path: Path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlJobStore:
    return SqlJobStore(session_factory)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def config() -> EngineConfig:
    """Production defaults with retry sleeps removed."""
    return EngineConfig(
        lookback_seconds=600,
        publish_base_delay_seconds=0.0,
        store_base_delay_seconds=0.0,
    )
