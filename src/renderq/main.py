"""FastAPI application factory and lifespan management."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from renderq.config import settings
from renderq.db.engine import create_db_engine, create_session_factory
from renderq.logging_config import configure_logging

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=not settings.local_mode)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # Auto-create tables for SQLite (local dev; production runs Alembic)
    if db_url.startswith("sqlite"):
        from renderq.db.base import Base
        import renderq.db.models  # noqa: F401 (register all ORM models)

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables created (local mode)")

    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)

    # Redis is optional in local mode
    if settings.local_mode:
        app.state.redis = None
    else:
        try:
            import redis.asyncio as aioredis
            app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        except Exception:
            logger.warning("Redis not available, push notifications disabled")
            app.state.redis = None

    scheduler_task = None
    if settings.embedded_scheduler or settings.local_mode:
        from renderq.workers.scheduler import run_scheduler
        scheduler_task = asyncio.create_task(run_scheduler(app))

    logger.info(
        "RenderQ API started (db=%s, embedded_scheduler=%s)",
        "sqlite" if db_url.startswith("sqlite") else "postgresql",
        scheduler_task is not None,
    )
    yield

    # Shutdown
    if scheduler_task:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
    if app.state.redis:
        await app.state.redis.aclose()
    await engine.dispose()
    logger.info("RenderQ API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="RenderQ API",
        version="1.0.0",
        description="Quota-gated job queue for batch creative asset generation.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Order matters: last added = first executed
    from renderq.api.middleware.auth import AuthMiddleware
    from renderq.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(AuthMiddleware)
    app.add_middleware(TraceIdMiddleware)

    from renderq.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    from renderq.api.middleware.rate_limit import setup_rate_limiter
    setup_rate_limiter(app)

    # Prometheus metrics (internal endpoint)
    from prometheus_fastapi_instrumentator import Instrumentator
    Instrumentator(
        should_group_status_codes=True,
        should_respect_env_var=False,
        excluded_handlers=["/api/v1/health.*", "/metrics"],
    ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    from renderq.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
