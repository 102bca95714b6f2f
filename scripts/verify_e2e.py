#!/usr/bin/env python3
"""
Live check against a running server (uvicorn duejobs.main:app):
create a job due now, trigger a tick, confirm it was dispatched and removed.
"""
import asyncio
import uuid
from datetime import datetime, timezone

import httpx

API_URL = "http://localhost:8000"

async def verify():
    # 0. Wait for API Readiness
    print("Waiting for API to be ready...")
    async with httpx.AsyncClient(base_url=API_URL, timeout=5.0) as check_client:
        for i in range(30):
            try:
                resp = await check_client.get("/health")
                if resp.status_code == 200:
                    print("API is ready!")
                    break
            except httpx.HTTPError:
                pass
            await asyncio.sleep(1)
        else:
            print("API failed to become ready.")
            return

    async with httpx.AsyncClient(base_url=API_URL, timeout=30.0) as client:
        # 1. Submit a job due right now
        unique_id = f"e2e-{uuid.uuid4().hex[:8]}"
        print("Submitting job...")
        resp = await client.post("/api/v1/jobs", json={
            "due_time": datetime.now(timezone.utc).isoformat(),
            "routing_key": "e2e.hello",
            "payload": {"msg": "hello world"},
            "unique_id": unique_id
        })
        if resp.status_code != 201:
            print(f"Failed to create job: {resp.text}")
            return

        job = resp.json()
        keys = {"partition_key": job["partition_key"], "sort_key": job["sort_key"]}
        print(f"Job created: {keys}")

        # 2. Trigger a tick
        print("Triggering tick...")
        resp = await client.post("/api/v1/admin/tick")
        resp.raise_for_status()
        print(f"Tick summary: {resp.json()}")

        # 3. The record should be gone
        resp = await client.get("/api/v1/jobs/lookup", params=keys)
        if resp.status_code == 404:
            print("SUCCESS: Job dispatched and deleted.")
        else:
            print(f"FAILURE: Job still present: {resp.json()}")

if __name__ == "__main__":
    asyncio.run(verify())
