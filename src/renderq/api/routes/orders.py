"""Order routes: enqueue a creative brief, read it back, cancel it."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.api.middleware.rate_limit import limiter, write_limit
from renderq.dependencies import get_current_user, get_db, get_redis
from renderq.events.publisher import ORDER_CANCELLED, ORDER_CREATED, publish_event
from renderq.models.intent import EnqueueRequest
from renderq.services import orders as order_service

router = APIRouter(tags=["Orders"])


@router.post("/orders", status_code=201)
@limiter.limit(write_limit)
async def enqueue_order(
    request: Request,
    body: EnqueueRequest,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    user: dict = Depends(get_current_user),
) -> dict:
    result = await order_service.enqueue(db, user["sub"], body)
    if not result.deduplicated:
        await publish_event(
            redis,
            ORDER_CREATED,
            {"order_id": result.order_id, "job_ids": result.job_ids},
            account_id=user["sub"],
        )
    return result.model_dump(mode="json")


@router.get("/orders")
async def list_orders(
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> list[dict]:
    views = await order_service.list_orders(db, user["sub"], limit=limit)
    return [view.model_dump(mode="json") for view in views]


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
) -> dict:
    view = await order_service.get_order_view(db, user["sub"], order_id)
    return view.model_dump(mode="json")


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    user: dict = Depends(get_current_user),
) -> dict:
    result, cancelled_ids = await order_service.cancel_order(db, user["sub"], order_id)
    if cancelled_ids:
        await publish_event(
            redis,
            ORDER_CANCELLED,
            {"order_id": order_id, "job_ids": cancelled_ids},
            account_id=user["sub"],
        )
    return result.model_dump(mode="json")
