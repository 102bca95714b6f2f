"""Tests for the HTTP surface."""

import httpx
import pytest

from duejobs.domain.errors import PublishPermanentError
from duejobs.main import app
from duejobs.scheduler.tick import Tick


@pytest.fixture
async def client(store, publisher, config):
    app.state.store = store
    app.state.tick = Tick(store, publisher, config)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestJobsApi:
    async def test_create_job_keys_by_due_time(self, client):
        resp = await client.post("/api/v1/jobs", json={
            "due_time": "2026-02-09T11:33:00Z",
            "routing_key": "reminders.email",
            "payload": {"user": 42},
            "unique_id": "r-1",
        })

        assert resp.status_code == 201
        body = resp.json()
        assert body["partition_key"] == "j#2026-02-09T11:30"
        assert body["sort_key"] == "2026-02-09T11:33:00.000000Z#r-1"
        assert body["claim"] is None

    async def test_lookup(self, client):
        created = (await client.post("/api/v1/jobs", json={
            "due_time": "2026-02-09T11:33:00+00:00",
            "routing_key": "reminders.email",
        })).json()

        resp = await client.get("/api/v1/jobs/lookup", params={
            "partition_key": created["partition_key"],
            "sort_key": created["sort_key"],
        })
        assert resp.status_code == 200
        assert resp.json()["routing_key"] == "reminders.email"

    async def test_lookup_missing(self, client):
        resp = await client.get("/api/v1/jobs/lookup", params={"partition_key": "j#x", "sort_key": "y"})
        assert resp.status_code == 404

    async def test_duplicate_unique_id_conflicts(self, client):
        body = {"due_time": "2026-02-09T11:33:00Z", "routing_key": "r", "unique_id": "dup"}
        assert (await client.post("/api/v1/jobs", json=body)).status_code == 201
        assert (await client.post("/api/v1/jobs", json=body)).status_code == 409

    @pytest.mark.parametrize("body", [
        {"due_time": "2026-02-09T11:33:00", "routing_key": "r"},
        {"due_time": "2026-02-09T11:33:00Z", "routing_key": ""},
        {"due_time": "2026-02-09T11:33:00Z", "routing_key": "r", "unique_id": "has#separator"},
    ])
    async def test_invalid_jobs_rejected(self, client, body):
        assert (await client.post("/api/v1/jobs", json=body)).status_code == 422


class TestAdminApi:
    async def test_tick_dispatches_due_jobs(self, client, publisher):
        await client.post("/api/v1/jobs", json={
            "due_time": "2026-02-09T11:33:00Z",
            "routing_key": "reminders.email",
            "unique_id": "t-1",
        })

        resp = await client.post("/api/v1/admin/tick", json={"now": "2026-02-09T11:34:10Z"})

        assert resp.status_code == 200
        assert resp.json() == {
            "candidates": 1,
            "dispatched": 1,
            "failed": 0,
            "skipped": 0,
            "dead_lettered": 0,
            "aborted": False,
            "deadline_exceeded": False,
        }
        assert publisher.message_ids == ["2026-02-09T11:33:00.000000Z#t-1"]

    async def test_tick_without_body_uses_server_clock(self, client):
        resp = await client.post("/api/v1/admin/tick")
        assert resp.status_code == 200
        assert resp.json()["candidates"] == 0

    async def test_dead_letters_listed(self, client, publisher):
        publisher.fail("bad.route", PublishPermanentError("HTTP 422"))
        await client.post("/api/v1/jobs", json={
            "due_time": "2026-02-09T11:33:00Z",
            "routing_key": "bad.route",
            "payload": {"oops": True},
        })
        await client.post("/api/v1/admin/tick", json={"now": "2026-02-09T11:34:10Z"})

        resp = await client.get("/api/v1/admin/dead_letters")

        assert resp.status_code == 200
        [dead] = resp.json()
        assert dead["routing_key"] == "bad.route"
        assert dead["payload"] == {"oops": True}
        assert dead["reason"] == "HTTP 422"

    async def test_health_and_metrics(self, client):
        assert (await client.get("/health")).json() == {"status": "ok"}
        metrics = await client.get("/metrics")
        assert metrics.status_code == 200
        assert "scheduler_ticks_total" in metrics.text
