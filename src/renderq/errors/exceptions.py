"""Custom exception classes for the RenderQ API."""


class RenderQError(Exception):
    """Base exception for RenderQ."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(RenderQError):
    """Schema or request validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class AuthenticationError(RenderQError):
    """Authentication required or token invalid."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__("AUTHENTICATION_ERROR", message, status_code=401)


class QuotaDeclinedError(RenderQError):
    """The account cannot afford the requested work in the current period."""

    def __init__(self, required: int, remaining: int):
        super().__init__(
            "INSUFFICIENT_QUOTA",
            f"Not enough quota units: {required} required, {remaining} remaining",
            details={"required": required, "remaining": remaining},
            status_code=402,
        )
        self.required = required
        self.remaining = remaining


class AuthorizationError(RenderQError):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient scope"):
        super().__init__("AUTHORIZATION_ERROR", message, status_code=403)


class NotFoundError(RenderQError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class ConflictError(RenderQError):
    """Resource state conflict."""

    def __init__(self, message: str):
        super().__init__("CONFLICT", message, status_code=409)


class RenderError(Exception):
    """Raised by a renderer when it cannot produce an asset.

    ``retryable=False`` marks errors that will fail the same way on every
    attempt (invalid payload, rejected prompt); the job is failed immediately.
    """

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)
