"""Tests for enqueue, order status reads and cancellation."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import ACCOUNT, NOW, image_request
from renderq.db.models.job import JobRow
from renderq.db.models.order import OrderRow
from renderq.errors.exceptions import NotFoundError, QuotaDeclinedError
from renderq.models.enums import JobStatus, OrderStatus
from renderq.models.intent import EnqueueRequest
from renderq.repositories.job_event_repo import JobEventRepository
from renderq.repositories.job_repo import JobRepository
from renderq.services import orders as order_service
from renderq.services.quota import ledger


async def _count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.asyncio
async def test_enqueue_creates_order_jobs_and_events(session_factory, enqueue):
    result = await enqueue(image_request(count=3))
    assert result.order_id.startswith("ord_")
    assert len(result.job_ids) == 3
    assert result.required_units == 3
    assert result.deduplicated is False

    async with session_factory() as session:
        jobs = await JobRepository(session).list_by_order(result.order_id)
        events = await JobEventRepository(session).list_by_job(result.job_ids[0])
    assert [j.job_id for j in jobs] == result.job_ids
    assert [j.position for j in jobs] == [0, 1, 2]
    assert all(j.status == JobStatus.QUEUED.value and j.attempts == 0 for j in jobs)
    assert all(j.idempotency_key is None for j in jobs)
    assert [e.status for e in events] == ["queued"]


@pytest.mark.asyncio
async def test_enqueue_does_not_debit(session_factory, enqueue, seed_balance):
    await seed_balance(total=10, consumed=0)
    await enqueue(image_request(count=3))
    async with session_factory() as session:
        view = await ledger.balance(session, ACCOUNT, now=NOW)
    assert view.consumed_units == 0


@pytest.mark.asyncio
async def test_declined_enqueue_writes_nothing(session_factory, enqueue, seed_balance):
    await seed_balance(total=5, consumed=5)
    with pytest.raises(QuotaDeclinedError) as exc_info:
        await enqueue(image_request(count=3))
    assert exc_info.value.status_code == 402
    assert exc_info.value.details == {"required": 3, "remaining": 0}

    async with session_factory() as session:
        assert await _count(session, OrderRow) == 0
        assert await _count(session, JobRow) == 0


@pytest.mark.asyncio
async def test_free_brief_accepted_at_the_limit(enqueue, seed_balance):
    await seed_balance(total=5, consumed=5)
    request = EnqueueRequest.model_validate({"brief": {"items": [{"kind": "text", "prompt": "caption"}]}})
    result = await enqueue(request)
    assert result.required_units == 0


@pytest.mark.asyncio
async def test_idempotent_enqueue_returns_existing_order(session_factory, enqueue):
    first = await enqueue(image_request(count=2, key="campaign-2026-03-a"))
    second = await enqueue(image_request(count=2, key="campaign-2026-03-a"))

    assert second.deduplicated is True
    assert second.order_id == first.order_id
    assert second.job_ids == first.job_ids
    async with session_factory() as session:
        assert await _count(session, JobRow) == 2
        jobs = await JobRepository(session).list_by_order(first.order_id)
    assert all(j.idempotency_key.startswith("v1:") for j in jobs)


@pytest.mark.asyncio
async def test_same_key_different_accounts_are_independent(enqueue):
    first = await enqueue(image_request(key="shared-key-0001"), account_id="acct_a")
    second = await enqueue(image_request(key="shared-key-0001"), account_id="acct_b")
    assert second.deduplicated is False
    assert second.order_id != first.order_id


@pytest.mark.asyncio
async def test_get_order_view(session_factory, enqueue):
    result = await enqueue(image_request(count=2))
    async with session_factory() as session:
        view = await order_service.get_order_view(session, ACCOUNT, result.order_id)
    assert view.status == OrderStatus.RUNNING
    assert view.total_jobs == 2
    assert view.completed_jobs == 0
    assert [j.job_id for j in view.jobs] == result.job_ids


@pytest.mark.asyncio
async def test_other_accounts_order_is_not_found(session_factory, enqueue):
    result = await enqueue()
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await order_service.get_order_view(session, "acct_other", result.order_id)


@pytest.mark.asyncio
async def test_list_orders_newest_first(session_factory, enqueue):
    older = await enqueue(now=NOW)
    newer = await enqueue(now=NOW + timedelta(minutes=1))
    async with session_factory() as session:
        views = await order_service.list_orders(session, ACCOUNT)
    assert [v.order_id for v in views] == [newer.order_id, older.order_id]


@pytest.mark.asyncio
async def test_cancel_order_cancels_queued_jobs(session_factory, enqueue):
    result = await enqueue(image_request(count=3))
    running_id = result.job_ids[0]
    async with session_factory() as session:
        await JobRepository(session).try_claim(running_id, NOW)
        await session.commit()

    async with session_factory() as session:
        cancel, cancelled_ids = await order_service.cancel_order(session, ACCOUNT, result.order_id, now=NOW)
    assert cancel.status == OrderStatus.CANCELLED
    assert cancel.cancelled_jobs == 2
    assert set(cancelled_ids) == set(result.job_ids[1:])

    async with session_factory() as session:
        jobs = {j.job_id: j.status for j in await JobRepository(session).list_by_order(result.order_id)}
        order = await session.get(OrderRow, result.order_id)
    assert jobs[running_id] == JobStatus.RUNNING.value
    assert order.status == OrderStatus.CANCELLED.value
    assert order.cancelled_at is not None


@pytest.mark.asyncio
async def test_cancel_is_idempotent(session_factory, enqueue):
    result = await enqueue()
    async with session_factory() as session:
        await order_service.cancel_order(session, ACCOUNT, result.order_id, now=NOW)
    async with session_factory() as session:
        again, cancelled_ids = await order_service.cancel_order(session, ACCOUNT, result.order_id, now=NOW)
    assert again.status == OrderStatus.CANCELLED
    assert again.cancelled_jobs == 0
    assert cancelled_ids == []
