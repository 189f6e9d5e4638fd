"""Shared test fixtures."""

import asyncio
import os
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt

# Rate limit counters stay in process; must be set before renderq.config loads
os.environ.setdefault("RENDERQ_RATE_LIMIT_STORAGE_URI", "memory://")

from renderq.api.middleware.rate_limit import limiter
from renderq.config import settings
from renderq.db.base import Base
from renderq.db.engine import create_db_engine, create_session_factory
# Import all models to register with Base.metadata
import renderq.db.models  # noqa: F401
from renderq.db.models.quota import QuotaBalanceRow
from renderq.models.enums import JobType
from renderq.models.intent import EnqueueRequest
from renderq.services import orders as order_service
from renderq.services.clock import period_start
from renderq.workers.renderer import Renderer, RenderResult

# Fixed clock: every time-dependent test passes this (or an offset of it)
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

ACCOUNT = "acct_test"


class ScriptedRenderer(Renderer):
    """Plays back scripted outcomes in call order, then succeeds.

    An outcome is an exception instance (raised), ``"hang"`` (never returns),
    or None (success).
    """

    def __init__(self, outcomes=None, delay: float = 0):
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls: list[tuple[str, dict]] = []

    async def render(self, job_type: str, payload: dict) -> RenderResult:
        self.calls.append((job_type, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "hang":
            await asyncio.sleep(3600)
        return RenderResult(asset_url=f"https://cdn.test/{job_type}/{len(self.calls)}", asset_meta={"n": len(self.calls)})


def registry_for(renderer: Renderer) -> dict[str, Renderer]:
    return {job_type.value: renderer for job_type in JobType}


def image_request(count: int = 1, key: str | None = None) -> EnqueueRequest:
    return EnqueueRequest.model_validate(
        {
            "brief": {"items": [{"kind": "image", "prompt": "a red bicycle", "count": count}]},
            "idempotency_key": key,
        }
    )


def make_token(sub: str, roles=(), **claims) -> str:
    payload = {
        "sub": sub,
        "roles": list(roles),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def bearer(sub: str = ACCOUNT, roles=()) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, roles)}"}


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine; overlapping sessions need a real file."""
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'renderq_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def renderer():
    return ScriptedRenderer()


@pytest.fixture
def registry(renderer):
    return registry_for(renderer)


@pytest.fixture
def seed_balance(session_factory):
    """Write the current-period balance row for an account."""

    async def _seed(total: int, consumed: int = 0, account_id: str = ACCOUNT, now: datetime = NOW, **extra):
        async with session_factory() as session:
            session.add(
                QuotaBalanceRow(
                    account_id=account_id,
                    period_start=period_start(now),
                    total_units=total,
                    consumed_units=consumed,
                    images_used=extra.pop("images_used", 0),
                    videos_used=extra.pop("videos_used", 0),
                    **extra,
                )
            )
            await session.commit()

    return _seed


@pytest.fixture
def enqueue(session_factory):
    """Enqueue a brief for an account and return the EnqueueResult."""

    async def _enqueue(request: EnqueueRequest | None = None, account_id: str = ACCOUNT, now: datetime = NOW):
        async with session_factory() as session:
            return await order_service.enqueue(session, account_id, request or image_request(), now=now)

    return _enqueue


@pytest.fixture
def app(db_engine, session_factory, registry):
    """Create a test application instance on the per-test database."""
    from renderq.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.redis = None
    _app.state.renderers = registry
    limiter.reset()
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
