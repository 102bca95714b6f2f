from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

@dataclass(frozen=True)
class Claim:
    owner_token: str
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

@dataclass(frozen=True)
class JobRecord:
    partition_key: str
    sort_key: str
    due_time: datetime
    routing_key: str
    payload: dict[str, Any] = field(default_factory=dict)
    claim: Optional[Claim] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.partition_key, self.sort_key)

@dataclass(frozen=True)
class DeadLetterRecord:
    partition_key: str
    sort_key: str
    due_time: datetime
    routing_key: str
    payload: dict[str, Any]
    reason: str
    attempts: int
    dead_lettered_at: datetime

@dataclass
class TickSummary:
    candidates: int = 0
    dispatched: int = 0
    failed: int = 0
    skipped: int = 0
    dead_lettered: int = 0
    aborted: bool = False
    deadline_exceeded: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
