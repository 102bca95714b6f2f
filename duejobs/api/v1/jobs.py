from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import AwareDatetime, BaseModel, Field

from duejobs.api.deps import Config, Store
from duejobs.domain.bucket import bucket, make_sort_key
from duejobs.domain.errors import DuplicateJobError
from duejobs.domain.models import JobRecord

router = APIRouter()

class JobCreate(BaseModel):
    due_time: AwareDatetime
    routing_key: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    # Caller-chosen suffix makes creation idempotent; random otherwise
    unique_id: Optional[str] = Field(default=None, min_length=1, pattern=r"^[A-Za-z0-9_.:-]+$")

class ClaimResponse(BaseModel):
    owner_token: str
    expires_at: datetime

class JobResponse(BaseModel):
    partition_key: str
    sort_key: str
    due_time: datetime
    routing_key: str
    payload: dict[str, Any]
    claim: Optional[ClaimResponse] = None

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobResponse":
        claim = None
        if job.claim:
            claim = ClaimResponse(owner_token=job.claim.owner_token, expires_at=job.claim.expires_at)
        return cls(
            partition_key=job.partition_key,
            sort_key=job.sort_key,
            due_time=job.due_time,
            routing_key=job.routing_key,
            payload=job.payload,
            claim=claim,
        )

@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(body: JobCreate, store: Store, config: Config):
    """
    Producer convenience: keys the job by its due time and writes it to the store.
    """
    job = JobRecord(
        partition_key=bucket(
            body.due_time,
            config.bucket_width_seconds,
            config.partition_prefix,
            config.key_separator,
        ),
        sort_key=make_sort_key(body.due_time, body.unique_id, config.key_separator),
        due_time=body.due_time,
        routing_key=body.routing_key,
        payload=body.payload,
    )
    try:
        await store.put(job)
    except DuplicateJobError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JobResponse.from_record(job)

@router.get("/lookup", response_model=JobResponse)
async def get_job(partition_key: str, sort_key: str, store: Store):
    job = await store.get(partition_key, sort_key)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.from_record(job)
