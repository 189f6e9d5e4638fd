"""Order aggregate status derived from child job statuses."""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from renderq.models.enums import PENDING_JOB_STATUSES, JobStatus, OrderStatus
from renderq.repositories.job_repo import JobRepository
from renderq.repositories.order_repo import OrderRepository


def aggregate_order_status(statuses: Iterable[str], cancelled: bool = False) -> OrderStatus:
    """Fold child statuses into the order status.

    cancelled if the order was cancelled; done when every child completed;
    error when a child failed and nothing is still queued or running;
    running otherwise.
    """
    if cancelled:
        return OrderStatus.CANCELLED
    statuses = [JobStatus(s) for s in statuses]
    if statuses and all(s == JobStatus.COMPLETED for s in statuses):
        return OrderStatus.DONE
    pending = any(s in PENDING_JOB_STATUSES for s in statuses)
    if not pending and any(s == JobStatus.FAILED for s in statuses):
        return OrderStatus.ERROR
    return OrderStatus.RUNNING


async def refresh_order_status(session: AsyncSession, order_id: str, now: datetime) -> OrderStatus | None:
    """Recompute and store the cached order status. Caller commits."""
    orders = OrderRepository(session)
    order = await orders.get(order_id)
    if order is None:
        return None
    statuses = await JobRepository(session).statuses_for_order(order_id)
    status = aggregate_order_status(statuses, cancelled=order.cancelled_at is not None)
    if status.value != order.status:
        await orders.set_status(order_id, status.value, now)
    return status
