#!/usr/bin/env python3
"""
Fires 20 overlapping ticks at a running server against a batch of due jobs
and checks that every job was dispatched by exactly one of them.
"""
import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import httpx

API_URL = "http://localhost:8000"
JOB_COUNT = 25

async def trigger_tick(client: httpx.AsyncClient):
    try:
        resp = await client.post("/api/v1/admin/tick", timeout=60.0)
        if resp.status_code == 200:
            return resp.json()
    except httpx.HTTPError:
        pass
    return None

async def verify_no_double_claim():
    run_id = uuid.uuid4().hex[:8]
    due = datetime.now(timezone.utc) - timedelta(seconds=5)

    async with httpx.AsyncClient(base_url=API_URL) as client:
        # 1. Create a batch of due jobs
        print(f"1. Creating {JOB_COUNT} due jobs...")
        for i in range(JOB_COUNT):
            resp = await client.post("/api/v1/jobs", json={
                "due_time": due.isoformat(),
                "routing_key": "concurrency.test",
                "payload": {"run": run_id, "n": i},
                "unique_id": f"{run_id}-{i:03d}"
            })
            resp.raise_for_status()

        # 2. Overlapping ticks
        print("2. Firing 20 concurrent ticks...")
        results = await asyncio.gather(*[trigger_tick(client) for _ in range(20)])

    # 3. Analyze results
    summaries = [r for r in results if r is not None]
    dispatched = sum(s["dispatched"] for s in summaries)
    skipped = sum(s["skipped"] for s in summaries)
    print(f"3. {len(summaries)} ticks answered: dispatched={dispatched} skipped={skipped}")

    # Assumes no other due jobs were in the table
    if any(s["failed"] for s in summaries):
        print("WARNING: some jobs failed; check the event router.")
    if dispatched == JOB_COUNT:
        print("SUCCESS: each job dispatched by exactly one tick.")
    elif dispatched < JOB_COUNT:
        print(f"FAILURE: only {dispatched} dispatches for {JOB_COUNT} jobs.")
    else:
        print(f"FAILURE: {dispatched} dispatches for {JOB_COUNT} jobs. Double dispatch (or a dirty table).")

if __name__ == "__main__":
    asyncio.run(verify_no_double_claim())
