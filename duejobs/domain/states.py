from enum import StrEnum, auto

class PublishOutcome(StrEnum):
    SUCCESS = auto()
    TRANSIENT_FAILURE = auto()  # Retries exhausted, claim released
    PERMANENT_FAILURE = auto()  # Payload rejected, goes to dead-letter

class JobOutcome(StrEnum):
    DISPATCHED = auto()       # Published (and deleted, unless the delete race was lost)
    FAILED = auto()           # Will be retried by a later tick
    SKIPPED = auto()          # Another owner holds a live claim
    DEAD_LETTERED = auto()    # Moved to the dead-letter table
