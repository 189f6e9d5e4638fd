"""Order service: enqueue a brief, read an order back, cancel it."""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.db.models.job import JobRow
from renderq.db.models.order import OrderRow
from renderq.errors.exceptions import NotFoundError, QuotaDeclinedError
from renderq.models.enums import JobStatus, OrderStatus
from renderq.models.intent import EnqueueRequest, JobSpecification
from renderq.models.job import CancelResult, EnqueueResult, JobView, OrderView
from renderq.repositories.job_event_repo import JobEventRepository
from renderq.repositories.job_repo import JobRepository
from renderq.repositories.order_repo import OrderRepository
from renderq.services.clock import utcnow
from renderq.services.id_generator import generate_id
from renderq.services.idempotency import build_job_idempotency_key
from renderq.services.intent.translator import billed_assets, required_units, translate
from renderq.services.order_status import aggregate_order_status, refresh_order_status
from renderq.services.quota import ledger

logger = logging.getLogger(__name__)


async def _existing_result(session: AsyncSession, order: OrderRow) -> EnqueueResult:
    jobs = await JobRepository(session).list_by_order(order.order_id)
    return EnqueueResult(
        order_id=order.order_id,
        job_ids=[job.job_id for job in jobs],
        required_units=order.required_units,
        deduplicated=True,
    )


async def create_order_with_jobs(
    session: AsyncSession,
    account_id: str,
    request: EnqueueRequest,
    specs: list[JobSpecification],
    now: datetime,
) -> tuple[OrderRow, list[JobRow]]:
    """Insert the order, its jobs and their first events. Caller commits."""
    order_key = request.idempotency_key
    order = OrderRow(
        order_id=generate_id("ord_"),
        account_id=account_id,
        brief=request.brief.model_dump(mode="json"),
        idempotency_key=order_key,
        required_units=required_units(specs),
        status=OrderStatus.RUNNING.value,
        created_at=now,
        updated_at=now,
    )
    session.add(order)
    await session.flush()

    jobs = []
    for position, spec in enumerate(specs):
        payload = spec.payload.model_dump(mode="json")
        jobs.append(
            JobRow(
                job_id=generate_id("job_"),
                order_id=order.order_id,
                position=position,
                account_id=account_id,
                job_type=spec.job_type.value,
                status=JobStatus.QUEUED.value,
                payload=payload,
                attempts=0,
                max_attempts=spec.max_attempts,
                idempotency_key=(
                    build_job_idempotency_key(account_id, order_key, spec.job_type.value, position, payload)
                    if order_key
                    else None
                ),
                asset_kind=spec.asset_kind.value,
                asset_quantity=spec.asset_quantity,
                cost_units=spec.cost_units,
                created_at=now,
                updated_at=now,
            )
        )
    await JobRepository(session).add_many(jobs)

    events = JobEventRepository(session)
    for job in jobs:
        await events.append(job.job_id, account_id, JobStatus.QUEUED.value, "Job enqueued", at=now)
    return order, jobs


async def enqueue(
    session: AsyncSession,
    account_id: str,
    request: EnqueueRequest,
    now: datetime | None = None,
) -> EnqueueResult:
    """Translate, authorize and persist a brief as one order. Commits.

    Raises QuotaDeclinedError before anything is written when the account
    cannot afford the order.
    """
    now = now or utcnow()
    orders = OrderRepository(session)
    key = request.idempotency_key

    if key:
        existing = await orders.get_by_idempotency_key(account_id, key)
        if existing:
            logger.info("Enqueue replay for key %s returned order %s", key, existing.order_id)
            return await _existing_result(session, existing)

    specs = translate(request.brief)
    units = required_units(specs)
    decision = await ledger.authorize(session, account_id, units, now)
    if not decision.allowed:
        raise QuotaDeclinedError(required=units, remaining=decision.remaining)

    try:
        order, jobs = await create_order_with_jobs(session, account_id, request, specs, now)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        if key:
            existing = await orders.get_by_idempotency_key(account_id, key)
            if existing:
                logger.info("Concurrent enqueue for key %s resolved to order %s", key, existing.order_id)
                return await _existing_result(session, existing)
        raise

    logger.info(
        "Enqueued order %s: %d jobs, %d units, assets=%s",
        order.order_id,
        len(jobs),
        units,
        {kind.value: qty for kind, qty in billed_assets(specs).items()},
    )
    return EnqueueResult(
        order_id=order.order_id,
        job_ids=[job.job_id for job in jobs],
        required_units=units,
    )


async def _owned_order(session: AsyncSession, account_id: str, order_id: str) -> OrderRow:
    order = await OrderRepository(session).get(order_id)
    # Other accounts' orders are reported as missing
    if order is None or order.account_id != account_id:
        raise NotFoundError("Order", order_id)
    return order


async def get_order_view(session: AsyncSession, account_id: str, order_id: str) -> OrderView:
    order = await _owned_order(session, account_id, order_id)
    jobs = await JobRepository(session).list_by_order(order_id)
    statuses = [job.status for job in jobs]
    return OrderView(
        order_id=order.order_id,
        account_id=order.account_id,
        status=aggregate_order_status(statuses, cancelled=order.cancelled_at is not None),
        required_units=order.required_units,
        total_jobs=len(jobs),
        completed_jobs=statuses.count(JobStatus.COMPLETED.value),
        failed_jobs=statuses.count(JobStatus.FAILED.value),
        cancelled_at=order.cancelled_at,
        created_at=order.created_at,
        jobs=[JobView.model_validate(job) for job in jobs],
    )


async def list_orders(session: AsyncSession, account_id: str, limit: int = 50) -> list[OrderView]:
    rows = await OrderRepository(session).list_by_account(account_id, limit=limit)
    return [await get_order_view(session, account_id, row.order_id) for row in rows]


async def cancel_order(
    session: AsyncSession,
    account_id: str,
    order_id: str,
    now: datetime | None = None,
) -> tuple[CancelResult, list[str]]:
    """Cancel an order and its queued jobs. Commits.

    Running jobs finish but their results are discarded at write-back.
    Returns the result and the ids of the jobs cancelled here.
    """
    now = now or utcnow()
    order = await _owned_order(session, account_id, order_id)
    jobs = JobRepository(session)

    current = aggregate_order_status(
        await jobs.statuses_for_order(order_id), cancelled=order.cancelled_at is not None
    )
    if current != OrderStatus.RUNNING:
        return CancelResult(order_id=order_id, status=current, cancelled_jobs=0), []

    if not await OrderRepository(session).mark_cancelled(order_id, now):
        return CancelResult(order_id=order_id, status=OrderStatus.CANCELLED, cancelled_jobs=0), []

    events = JobEventRepository(session)
    cancelled = []
    for job_id in await jobs.list_queued_ids_for_order(order_id):
        if await jobs.cancel_queued(job_id, now):
            await events.append(job_id, account_id, JobStatus.CANCELLED.value, "Cancelled by user", at=now)
            cancelled.append(job_id)
    status = await refresh_order_status(session, order_id, now)
    await session.commit()

    logger.info("Cancelled order %s (%d queued jobs cancelled)", order_id, len(cancelled))
    return CancelResult(order_id=order_id, status=status, cancelled_jobs=len(cancelled)), cancelled
