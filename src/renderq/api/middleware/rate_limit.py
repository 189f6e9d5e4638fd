"""Rate limiting using slowapi.

Limits are per account for authenticated callers and per client address
otherwise. Counters live in Redis so every API replica shares them; local
mode keeps them in memory.
"""

import logging

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from renderq.config import settings

logger = logging.getLogger(__name__)


def rate_limit_key(request: Request) -> str:
    """Use the account id for authenticated users, IP for anonymous."""
    user = getattr(request.state, "user", {}) or {}
    sub = user.get("sub", "")
    if sub and sub != "anonymous":
        return f"user:{sub}"
    return get_remote_address(request)


def _storage_uri() -> str:
    if settings.rate_limit_storage_uri:
        return settings.rate_limit_storage_uri
    return "memory://" if settings.local_mode else settings.redis_url


def write_limit() -> str:
    return f"{settings.rate_limit_writes_per_minute}/minute"


def tick_limit() -> str:
    return f"{settings.rate_limit_ticks_per_minute}/minute"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[],
    storage_uri=_storage_uri(),
    in_memory_fallback_enabled=True,
    enabled=settings.rate_limit_enabled,
)


def setup_rate_limiter(app) -> None:
    """Attach the shared limiter and its 429 handler to the app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    if settings.rate_limit_enabled:
        logger.info(
            "Rate limiter configured (writes=%d/min, ticks=%d/min)",
            settings.rate_limit_writes_per_minute,
            settings.rate_limit_ticks_per_minute,
        )
