"""JWT Bearer authentication middleware.

Tokens are issued by the identity provider; ``sub`` is the account id and
``roles`` may grant ``operator`` or ``admin``.
"""

import logging

from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from renderq.config import settings

logger = logging.getLogger(__name__)

# Paths that do not require authentication
_PUBLIC_PATHS = {
    "/api/v1/health",
    "/api/v1/health/live",
    "/api/v1/health/ready",
    "/docs",
    "/openapi.json",
    "/redoc",
}

_ANONYMOUS = {"sub": "anonymous", "roles": []}


def _decode_jwt(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as exc:
        logger.debug("JWT decode failed: %s", exc)
        raise ValueError(f"Invalid token: {exc}") from exc


class AuthMiddleware(BaseHTTPMiddleware):
    """Validate a Bearer token and attach user info to request.state."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        if path in _PUBLIC_PATHS or path.startswith("/docs") or path.startswith("/redoc"):
            request.state.user = dict(_ANONYMOUS)
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            user_info = self._validate_jwt(auth_header[7:])
        else:
            # Routes enforce auth through their dependencies
            user_info = dict(_ANONYMOUS)

        request.state.user = user_info
        return await call_next(request)

    def _validate_jwt(self, token: str) -> dict:
        try:
            payload = _decode_jwt(token)
        except ValueError:
            return {**_ANONYMOUS, "_auth_error": "invalid_token"}

        if payload.get("type") == "refresh":
            return {**_ANONYMOUS, "_auth_error": "not_access_token"}

        return {
            "sub": payload.get("sub", ""),
            "roles": payload.get("roles", []),
            "email": payload.get("email", ""),
        }
