"""Operator routes: run a dispatcher or reclaimer tick on demand."""

from fastapi import APIRouter, Query, Request

from renderq.api.middleware.rate_limit import limiter, tick_limit
from renderq.dependencies import RequireOperator
from renderq.workers.dispatcher import run_dispatch_tick
from renderq.workers.reclaimer import run_reclaim_tick

router = APIRouter(prefix="/operator", tags=["Operator"], dependencies=[RequireOperator])


@router.post("/dispatch")
@limiter.limit(tick_limit)
async def dispatch(request: Request, batch_size: int | None = Query(None, ge=1, le=20)) -> dict:
    report = await run_dispatch_tick(
        request.app.state.db_session_factory,
        getattr(request.app.state, "renderers", None),
        batch_size=batch_size,
        redis=request.app.state.redis,
    )
    return report.as_dict()


@router.post("/reclaim")
@limiter.limit(tick_limit)
async def reclaim(request: Request) -> dict:
    report = await run_reclaim_tick(request.app.state.db_session_factory, redis=request.app.state.redis)
    return report.as_dict()
