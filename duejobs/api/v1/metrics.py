from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
TICKS_TOTAL = Counter(
    "scheduler_ticks_total",
    "Total ticks run",
    ["result"]  # completed|aborted|deadline_exceeded
)

TICK_DURATION = Histogram(
    "scheduler_tick_duration_seconds",
    "Wall time of one tick",
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0]
)

JOBS_DISPATCHED = Counter(
    "jobs_dispatched_total",
    "Jobs whose payload was accepted by the event router"
)

JOB_FAILURES = Counter(
    "job_failures_total",
    "Per-job failures within a tick",
    ["type"]  # transient|permanent|store|unexpected
)

CLAIM_CONFLICTS = Counter(
    "claim_conflicts_total",
    "Claims refused because another owner held a live claim"
)

DELETE_RACE_LOST = Counter(
    "delete_race_lost_total",
    "Deletes skipped because the claim had passed to another owner"
)

PUBLISH_ATTEMPTS = Counter(
    "publish_attempts_total",
    "Calls made to the event router, retries included"
)

DISPATCH_DELAY = Histogram(
    "dispatch_delay_seconds",
    "Time from due_time to successful publish",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 900.0]
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
