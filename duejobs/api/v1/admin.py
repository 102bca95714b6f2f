from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Query
from pydantic import AwareDatetime, BaseModel

from duejobs.api.deps import Store, TickRunner

router = APIRouter()

class TickRequest(BaseModel):
    # Trigger's notion of "now"; server clock if omitted
    now: Optional[AwareDatetime] = None

class TickResponse(BaseModel):
    candidates: int
    dispatched: int
    failed: int
    skipped: int
    dead_lettered: int
    aborted: bool
    deadline_exceeded: bool

class DeadLetterResponse(BaseModel):
    partition_key: str
    sort_key: str
    due_time: datetime
    routing_key: str
    payload: dict[str, Any]
    reason: str
    attempts: int
    dead_lettered_at: datetime

@router.post("/tick", response_model=TickResponse)
async def trigger_tick(tick: TickRunner, body: Optional[TickRequest] = None):
    """
    Runs one tick. Entry point for external periodic triggers (cron, cloud schedulers).
    """
    summary = await tick.on_tick(body.now if body else None)
    return TickResponse(**summary.as_dict())

@router.get("/dead_letters", response_model=list[DeadLetterResponse])
async def list_dead_letters(store: Store, limit: int = Query(default=100, ge=1, le=1000)):
    records = await store.list_dead_letters(limit=limit)
    return [DeadLetterResponse(**asdict(r)) for r in records]
