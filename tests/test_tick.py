"""End-to-end tests for Tick against the SQL store."""

import asyncio
from dataclasses import replace
from datetime import timedelta

import httpx

from duejobs.domain.errors import PublishPermanentError, PublishTransientError, StoreUnavailableError
from duejobs.scheduler.claims import ClaimCoordinator
from duejobs.scheduler.cleanup import CleanupCoordinator
from duejobs.scheduler.tick import Tick
from duejobs.services.publisher import HttpEventPublisher

from conftest import make_job, utc

NOW = utc(2026, 2, 9, 11, 34, 10)


class FlakyStore:
    """Wraps a real store; chosen operations raise StoreUnavailableError."""

    def __init__(self, inner, failing: set[str]):
        self.inner = inner
        self.failing = failing

    def __getattr__(self, name):
        target = getattr(self.inner, name)
        if name not in self.failing:
            return target

        async def unavailable(*args, **kwargs):
            raise StoreUnavailableError(f"{name}: connection reset")

        return unavailable


class BlockingPublisher:
    """Never finishes publishing within the test's deadline."""

    def __init__(self):
        self.started = 0

    async def publish(self, routing_key, payload, *, message_id):
        self.started += 1
        await asyncio.sleep(10)


class TestExampleScenario:
    async def test_dispatch_delete_and_not_seen_again(self, store, publisher, config):
        job = make_job(utc(2026, 2, 9, 11, 33), routing_key="reminders.email", payload={"user": 42})
        await store.put(job)
        tick = Tick(store, publisher, config)

        summary = await tick.on_tick(NOW)

        assert summary.candidates == 1
        assert summary.dispatched == 1
        assert summary.failed == summary.skipped == summary.dead_lettered == 0
        assert publisher.published == [(job.sort_key, "reminders.email", {"user": 42})]
        assert await store.get(job.partition_key, job.sort_key) is None

        second = await tick.on_tick(NOW + timedelta(minutes=1))
        assert second.candidates == 0
        assert len(publisher.published) == 1

    async def test_job_not_yet_due_waits(self, store, publisher, config):
        job = make_job(utc(2026, 2, 9, 11, 35))
        await store.put(job)
        tick = Tick(store, publisher, config)

        assert (await tick.on_tick(NOW)).candidates == 0
        assert (await tick.on_tick(utc(2026, 2, 9, 11, 35, 30))).dispatched == 1


class TestDeliveryGuarantees:
    async def test_sequential_ticks_publish_each_job_once(self, store, publisher, config):
        jobs = [make_job(utc(2026, 2, 9, 11, 25 + i), unique_id=f"job{i}") for i in range(8)]
        for job in jobs:
            await store.put(job)
        tick = Tick(store, publisher, config)

        for minute in range(5):
            await tick.on_tick(NOW + timedelta(minutes=minute))

        assert sorted(publisher.message_ids) == sorted(j.sort_key for j in jobs)
        for job in jobs:
            assert await store.get(job.partition_key, job.sort_key) is None

    async def test_overlapping_ticks_do_not_double_dispatch(self, store, publisher, config):
        jobs = [make_job(utc(2026, 2, 9, 11, 31, i), unique_id=f"job{i}") for i in range(12)]
        for job in jobs:
            await store.put(job)
        ticks = [Tick(store, publisher, replace(config, tick_concurrency=4)) for _ in range(3)]

        summaries = await asyncio.gather(*[t.on_tick(NOW) for t in ticks])

        assert sum(s.dispatched for s in summaries) == len(jobs)
        assert sorted(publisher.message_ids) == sorted(j.sort_key for j in jobs)

    async def test_processing_order_is_oldest_first(self, store, publisher, config):
        jobs = [make_job(utc(2026, 2, 9, 11, 33 - i), unique_id=f"job{i}") for i in range(4)]
        for job in jobs:
            await store.put(job)

        await Tick(store, publisher, replace(config, tick_concurrency=1)).on_tick(NOW)

        assert publisher.message_ids == sorted(j.sort_key for j in jobs)

    async def test_live_claim_from_another_tick_is_skipped(self, store, publisher, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        await store.claim(job.partition_key, job.sort_key, "other-tick", NOW, NOW + timedelta(minutes=2))

        summary = await Tick(store, publisher, config).on_tick(NOW)

        assert summary.skipped == 1
        assert summary.failed == 0
        assert publisher.published == []

    async def test_expired_claim_of_crashed_tick_is_recovered(self, store, publisher, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        await store.claim(job.partition_key, job.sort_key, "crashed", NOW, NOW + timedelta(seconds=30))

        summary = await Tick(store, publisher, config).on_tick(NOW + timedelta(minutes=1))

        assert summary.dispatched == 1
        assert await store.get(job.partition_key, job.sort_key) is None


class TestClaimRaces:
    async def test_slow_owner_cannot_delete_job_reclaimed_by_another(self, store, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        claims = ClaimCoordinator(store, config)
        cleanup = CleanupCoordinator(store, config)

        # A claims with a short lease and stalls in publish; the lease runs out
        assert await claims.try_claim(job, "owner-a", NOW, ttl=timedelta(seconds=10))
        later = NOW + timedelta(seconds=20)
        assert await claims.try_claim(job, "owner-b", later)

        # A finishes late: its delete must be a no-op
        assert not await cleanup.confirm_and_delete(job, "owner-a")
        loaded = await store.get(job.partition_key, job.sort_key)
        assert loaded.claim.owner_token == "owner-b"

        assert await cleanup.confirm_and_delete(job, "owner-b")
        assert await store.get(job.partition_key, job.sort_key) is None

    async def test_owner_settles_lapsed_claim_nobody_took_over(self, store, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        claims = ClaimCoordinator(store, config)
        cleanup = CleanupCoordinator(store, config)

        assert await claims.try_claim(job, "owner-a", NOW, ttl=timedelta(seconds=10))

        # Lease has lapsed but no other tick claimed the job in between
        assert await cleanup.confirm_and_delete(job, "owner-a")
        assert await store.get(job.partition_key, job.sort_key) is None

    async def test_stale_release_does_not_free_new_claim(self, store, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        claims = ClaimCoordinator(store, config)

        await claims.try_claim(job, "owner-a", NOW, ttl=timedelta(seconds=10))
        await claims.try_claim(job, "owner-b", NOW + timedelta(seconds=20))

        assert not await claims.release(job, "owner-a")
        assert (await store.get(job.partition_key, job.sort_key)).claim.owner_token == "owner-b"


class TestFailures:
    async def test_transient_failure_releases_claim_for_next_tick(self, store, publisher, config):
        job = make_job(utc(2026, 2, 9, 11, 33), routing_key="flaky")
        await store.put(job)
        publisher.fail("flaky", *[PublishTransientError("503")] * config.publish_max_attempts)
        tick = Tick(store, publisher, config)

        first = await tick.on_tick(NOW)
        assert first.failed == 1
        loaded = await store.get(job.partition_key, job.sort_key)
        assert loaded is not None
        assert loaded.claim is None

        second = await tick.on_tick(NOW + timedelta(minutes=1))
        assert second.dispatched == 1
        assert publisher.message_ids == [job.sort_key]

    async def test_permanent_failure_dead_letters_once(self, store, publisher, config):
        bad = make_job(utc(2026, 2, 9, 11, 32), routing_key="bad", unique_id="bad")
        good = make_job(utc(2026, 2, 9, 11, 33), routing_key="good", unique_id="good")
        await store.put(bad)
        await store.put(good)
        publisher.fail("bad", *[PublishPermanentError("HTTP 422")] * 5)
        tick = Tick(store, publisher, config)

        summary = await tick.on_tick(NOW)

        assert summary.dead_lettered == 1
        assert summary.dispatched == 1
        assert publisher.calls == 2
        [dead] = await store.list_dead_letters()
        assert dead.sort_key == bad.sort_key
        assert dead.reason == "HTTP 422"
        assert dead.attempts == 1

        again = await tick.on_tick(NOW + timedelta(minutes=1))
        assert again.candidates == 0
        assert publisher.calls == 2

    async def test_missing_router_route_is_retried_not_dead_lettered(self, store, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        http_publisher = HttpEventPublisher("http://router.test/events", client=client)

        summary = await Tick(store, http_publisher, config).on_tick(NOW)
        await http_publisher.close()

        assert summary.failed == 1
        assert summary.dead_lettered == 0
        loaded = await store.get(job.partition_key, job.sort_key)
        assert loaded is not None
        assert loaded.claim is None
        assert await store.list_dead_letters() == []

    async def test_recreated_key_is_dead_lettered_again(self, store, publisher, config):
        job = make_job(utc(2026, 2, 9, 11, 33), routing_key="bad", unique_id="order-7")
        publisher.fail("bad", *[PublishPermanentError("HTTP 422")] * 5)
        tick = Tick(store, publisher, config)

        await store.put(job)
        first = await tick.on_tick(NOW)
        await store.put(job)
        second = await tick.on_tick(NOW + timedelta(minutes=1))

        assert first.dead_lettered == 1
        assert second.dead_lettered == 1
        assert second.failed == 0
        assert publisher.calls == 2
        assert await store.get(job.partition_key, job.sort_key) is None
        dead = await store.list_dead_letters()
        assert [d.sort_key for d in dead] == [job.sort_key, job.sort_key]
        assert dead[0].dead_lettered_at > dead[1].dead_lettered_at

        third = await tick.on_tick(NOW + timedelta(minutes=2))
        assert third.candidates == 0
        assert publisher.calls == 2

    async def test_store_unavailable_during_scan_aborts_tick(self, store, publisher, config):
        await store.put(make_job(utc(2026, 2, 9, 11, 33)))
        flaky = FlakyStore(store, {"scan"})

        summary = await Tick(flaky, publisher, config).on_tick(NOW)

        assert summary.aborted
        assert summary.candidates == 0
        assert publisher.published == []

    async def test_store_unavailable_during_claims_stops_tick(self, store, publisher, config):
        for i in range(3):
            await store.put(make_job(utc(2026, 2, 9, 11, 33, i)))
        flaky = FlakyStore(store, {"claim"})

        summary = await Tick(flaky, publisher, replace(config, tick_concurrency=1)).on_tick(NOW)

        assert summary.aborted
        assert summary.candidates == 3
        assert summary.failed == 1
        assert summary.skipped == 2
        assert publisher.published == []

    async def test_failed_delete_still_counts_as_dispatched(self, store, publisher, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        flaky = FlakyStore(store, {"delete"})

        summary = await Tick(flaky, publisher, config).on_tick(NOW)

        assert summary.dispatched == 1
        assert summary.aborted
        # Record survives with its claim; it is republished once the claim lapses
        loaded = await store.get(job.partition_key, job.sort_key)
        assert loaded.claim is not None

    async def test_one_job_failure_does_not_affect_others(self, store, publisher, config):
        await store.put(make_job(utc(2026, 2, 9, 11, 31), routing_key="broken", unique_id="a"))
        ok = make_job(utc(2026, 2, 9, 11, 32), routing_key="fine", unique_id="b")
        await store.put(ok)
        publisher.fail("broken", RuntimeError("publisher bug"))

        summary = await Tick(store, publisher, config).on_tick(NOW)

        assert summary.failed == 1
        assert summary.dispatched == 1
        assert publisher.message_ids == [ok.sort_key]


class TestDeadline:
    async def test_deadline_leaves_claims_to_expire(self, store, config):
        job = make_job(utc(2026, 2, 9, 11, 33))
        await store.put(job)
        blocking = BlockingPublisher()
        cfg = replace(config, tick_deadline_seconds=0.3, call_timeout_seconds=30)

        summary = await Tick(store, blocking, cfg).on_tick(NOW)

        assert summary.deadline_exceeded
        assert summary.failed == 1
        assert blocking.started == 1
        loaded = await store.get(job.partition_key, job.sort_key)
        assert loaded.claim is not None
        assert loaded.claim.expires_at > NOW
