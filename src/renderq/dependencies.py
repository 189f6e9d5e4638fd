"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request

from renderq.errors.exceptions import AuthenticationError, AuthorizationError
from renderq.logging_config import bind_request_context

OPERATOR_ROLES = ("operator", "admin")


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


async def get_redis(request: Request):
    """Return the Redis connection pool from app state."""
    return request.app.state.redis


def get_trace_id(request: Request) -> str:
    """Extract trace_id from request state (set by middleware)."""
    return getattr(request.state, "trace_id", "unknown")


async def get_current_user(request: Request) -> dict:
    """Return the authenticated user dict or raise 401.

    ``sub`` is the account id every quota and order operation is scoped to.
    """
    user = getattr(request.state, "user", {})
    if "_auth_error" in user:
        raise AuthenticationError(user["_auth_error"])
    if not user or user.get("sub") in ("anonymous", ""):
        raise AuthenticationError("Authentication required")
    bind_request_context(get_trace_id(request), account_id=user["sub"])
    return user


def has_role(user: dict, *roles: str) -> bool:
    return bool(set(user.get("roles", [])).intersection(roles))


def require_role(*roles: str):
    """Return a dependency that enforces one of the given roles."""

    async def _check(user: dict = Depends(get_current_user)) -> dict:
        if not has_role(user, *roles):
            raise AuthorizationError(f"Requires one of: {', '.join(roles)}")
        return user

    return _check


# Type aliases for dependency injection
DBSession = Annotated[object, Depends(get_db)]
RedisConn = Annotated[object, Depends(get_redis)]
TraceId = Annotated[str, Depends(get_trace_id)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
RequireAdmin = Depends(require_role("admin"))
RequireOperator = Depends(require_role(*OPERATOR_ROLES))
