"""Master API router mounted at /api/v1."""

from fastapi import APIRouter

from renderq.api.routes import health, jobs, monitor, operator, orders, quota, stream

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(orders.router)
api_router.include_router(jobs.router)
api_router.include_router(quota.router)
api_router.include_router(monitor.router)
api_router.include_router(operator.router)
api_router.include_router(stream.router)
