"""Tests for the dispatcher tick: claim, render, conditional write-back."""

import asyncio
from datetime import timedelta

import pytest

from conftest import ACCOUNT, NOW, ScriptedRenderer, image_request, registry_for
from renderq.errors.exceptions import RenderError
from renderq.models.enums import JobStatus, OrderStatus
from renderq.models.policies import JobTypePolicy
from renderq.repositories.job_event_repo import JobEventRepository
from renderq.repositories.job_repo import JobRepository
from renderq.repositories.quota_repo import QuotaDebitRepository
from renderq.services import orders as order_service
from renderq.services.quota import ledger
from renderq.workers import dispatcher
from renderq.workers.dispatcher import backoff_seconds, run_dispatch_tick


async def _job(session_factory, job_id):
    async with session_factory() as session:
        return await JobRepository(session).get(job_id)


def test_backoff_doubles_and_caps():
    assert backoff_seconds(1) == 5.0
    assert backoff_seconds(2) == 10.0
    assert backoff_seconds(3) == 20.0
    assert backoff_seconds(20) == 300.0


@pytest.mark.asyncio
async def test_tick_completes_and_debits(session_factory, enqueue, seed_balance, renderer, registry):
    await seed_balance(total=10)
    result = await enqueue(image_request(count=2))

    report = await run_dispatch_tick(session_factory, registry, batch_size=3, now=NOW)

    assert report.claimed == 2
    assert report.completed == 2
    assert sorted(report.job_ids) == sorted(result.job_ids)
    assert len(renderer.calls) == 2
    async with session_factory() as session:
        view = await order_service.get_order_view(session, ACCOUNT, result.order_id)
        balance = await ledger.balance(session, ACCOUNT, now=NOW)
        events = await JobEventRepository(session).list_by_job(result.job_ids[0])
    assert view.status == OrderStatus.DONE
    assert all(j.result["asset_url"].startswith("https://cdn.test/") for j in view.jobs)
    assert balance.consumed_units == 2
    assert sorted(e.status for e in events) == ["completed", "queued", "running"]


@pytest.mark.asyncio
async def test_batch_size_limits_claims(session_factory, enqueue, registry):
    await enqueue(image_request(count=5))
    report = await run_dispatch_tick(session_factory, registry, batch_size=2, now=NOW)
    assert report.claimed == 2
    async with session_factory() as session:
        counts = await JobRepository(session).count_by_status()
    assert counts == {"completed": 2, "queued": 3}


@pytest.mark.asyncio
async def test_empty_queue_is_a_no_op(session_factory, registry):
    report = await run_dispatch_tick(session_factory, registry, now=NOW)
    assert report.as_dict()["claimed"] == 0


@pytest.mark.asyncio
async def test_retryable_failure_requeues_with_backoff(session_factory, enqueue):
    renderer = ScriptedRenderer([RenderError("upstream 503")])
    result = await enqueue()

    report = await run_dispatch_tick(session_factory, registry_for(renderer), now=NOW)

    assert report.retried == 1
    assert report.errors == 0
    job = await _job(session_factory, result.job_ids[0])
    assert job.status == JobStatus.QUEUED.value
    assert job.attempts == 1
    assert job.error == "upstream 503"
    assert job.claimed_at is None
    # Not eligible again until the backoff elapses
    again = await run_dispatch_tick(session_factory, registry_for(renderer), now=NOW + timedelta(seconds=4))
    assert again.claimed == 0


@pytest.mark.asyncio
async def test_non_retryable_failure_fails_immediately(session_factory, enqueue):
    renderer = ScriptedRenderer([RenderError("prompt rejected", retryable=False)])
    result = await enqueue()

    report = await run_dispatch_tick(session_factory, registry_for(renderer), now=NOW)

    assert report.failed == 1
    job = await _job(session_factory, result.job_ids[0])
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 1
    async with session_factory() as session:
        view = await order_service.get_order_view(session, ACCOUNT, result.order_id)
        assert await QuotaDebitRepository(session).get(job.job_id) is None
    assert view.status == OrderStatus.ERROR


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained(session_factory, enqueue):
    renderer = ScriptedRenderer([KeyError("boom"), None])
    result = await enqueue(image_request(count=2))

    report = await run_dispatch_tick(session_factory, registry_for(renderer), now=NOW)

    assert report.claimed == 2
    assert report.retried == 1
    assert report.completed == 1
    statuses = sorted([(await _job(session_factory, j)).status for j in result.job_ids])
    assert statuses == ["completed", "queued"]


@pytest.mark.asyncio
async def test_missing_renderer_fails_job(session_factory, enqueue):
    result = await enqueue()
    report = await run_dispatch_tick(session_factory, {}, now=NOW)
    assert report.failed == 1
    job = await _job(session_factory, result.job_ids[0])
    assert "No renderer" in job.error


@pytest.mark.asyncio
async def test_renderer_timeout_is_retryable(session_factory, enqueue, monkeypatch):
    monkeypatch.setattr(
        dispatcher, "policy_for", lambda job_type: JobTypePolicy(timeout_seconds=0.05, max_attempts=3, asset_kind="image")
    )
    renderer = ScriptedRenderer(["hang"])
    result = await enqueue()

    report = await run_dispatch_tick(session_factory, registry_for(renderer), now=NOW)

    assert report.retried == 1
    job = await _job(session_factory, result.job_ids[0])
    assert job.status == JobStatus.QUEUED.value
    assert "timed out" in job.error


@pytest.mark.asyncio
async def test_attempts_exhausted_fails(session_factory, enqueue):
    renderer = ScriptedRenderer([RenderError("flaky")] * 3)
    result = await enqueue()
    registry = registry_for(renderer)

    at = NOW
    for _ in range(3):
        await run_dispatch_tick(session_factory, registry, now=at)
        at += timedelta(minutes=10)

    job = await _job(session_factory, result.job_ids[0])
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 3
    # Failed jobs are never picked up again
    report = await run_dispatch_tick(session_factory, registry, now=at)
    assert report.claimed == 0


@pytest.mark.asyncio
async def test_result_discarded_when_order_cancelled_mid_render(session_factory, enqueue, seed_balance):
    await seed_balance(total=10)
    result = await enqueue()
    order_id = result.order_id

    class CancellingRenderer(ScriptedRenderer):
        async def render(self, job_type, payload):
            async with session_factory() as session:
                await order_service.cancel_order(session, ACCOUNT, order_id, now=NOW)
            return await super().render(job_type, payload)

    report = await run_dispatch_tick(session_factory, registry_for(CancellingRenderer()), now=NOW)

    assert report.discarded == 1
    assert report.completed == 0
    job = await _job(session_factory, result.job_ids[0])
    assert job.status == JobStatus.CANCELLED.value
    assert job.result is None
    async with session_factory() as session:
        balance = await ledger.balance(session, ACCOUNT, now=NOW)
    assert balance.consumed_units == 0


@pytest.mark.asyncio
async def test_transitions_published_after_commit(session_factory, enqueue, registry):
    class FakeRedis:
        def __init__(self):
            self.published = []

        async def publish(self, channel, message):
            self.published.append((channel, message))

    redis = FakeRedis()
    await enqueue()
    await run_dispatch_tick(session_factory, registry, now=NOW, redis=redis)

    assert len(redis.published) == 1
    channel, message = redis.published[0]
    assert channel == f"renderq:events:account:{ACCOUNT}"
    assert '"status": "completed"' in message


@pytest.mark.asyncio
async def test_slow_renders_do_not_block_other_ticks(session_factory, enqueue):
    await enqueue(image_request(count=2))
    slow = ScriptedRenderer(delay=0.05)

    first, second = await asyncio.gather(
        run_dispatch_tick(session_factory, registry_for(slow), batch_size=1, now=NOW),
        run_dispatch_tick(session_factory, registry_for(slow), batch_size=1, now=NOW),
    )
    assert first.claimed + second.claimed == 2
    assert first.completed + second.completed == 2
