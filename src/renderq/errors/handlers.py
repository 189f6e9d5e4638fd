"""FastAPI exception handlers producing ErrorResponse bodies."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from renderq.errors.exceptions import AuthorizationError, QuotaDeclinedError, RenderQError
from renderq.models.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app."""

    @app.exception_handler(RenderQError)
    async def renderq_error_handler(request: Request, exc: RenderQError):
        trace_id = getattr(request.state, "trace_id", "unknown")
        user = getattr(request.state, "user", {}) or {}
        if isinstance(exc, AuthorizationError):
            logger.warning(
                "access_denied",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "trace_id": trace_id,
                    "user_sub": user.get("sub", "anonymous"),
                    "user_roles": user.get("roles", []),
                    "reason": str(exc),
                },
            )
        elif isinstance(exc, QuotaDeclinedError):
            logger.info(
                "quota_declined",
                extra={
                    "trace_id": trace_id,
                    "account_id": user.get("sub"),
                    "required": exc.required,
                    "remaining": exc.remaining,
                },
            )
        error_response = ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                trace_id=trace_id,
                timestamp=datetime.now(timezone.utc),
            ),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump(mode="json", exclude_none=True),
        )
