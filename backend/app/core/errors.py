"""API error classes.

Every error carries a machine-readable code, a human-readable message and
the HTTP status it maps to. The exception handler in main.py renders them
into the standard error envelope.

Portal status-code convention:
- 404 TOKEN_NOT_FOUND: token unknown, or not valid for this endpoint
- 410 TOKEN_EXPIRED / TOKEN_REVOKED: token exists but its window has closed
- 400 INVALID_STATE: token valid but the resource forbids the action
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional extra response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to the
    caller's organization. Revealing "exists but not yours" leaks information.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class TokenNotFoundError(APIError):
    """Portal token unknown or not valid for this endpoint (404)."""

    def __init__(
        self,
        message: str = (
            "This link was not found. Please check the URL or contact the business."
        ),
    ) -> None:
        super().__init__(
            code="TOKEN_NOT_FOUND",
            message=message,
            status_code=404,
        )


class TokenExpiredError(APIError):
    """Portal token past its expiry instant (410 Gone)."""

    def __init__(
        self,
        message: str = (
            "This link has expired. Please contact the business for a new link."
        ),
    ) -> None:
        super().__init__(
            code="TOKEN_EXPIRED",
            message=message,
            status_code=410,
        )


class TokenRevokedError(APIError):
    """Portal token explicitly revoked (410 Gone)."""

    def __init__(
        self,
        message: str = (
            "This link is no longer valid. "
            "Please contact the business for assistance."
        ),
    ) -> None:
        super().__init__(
            code="TOKEN_REVOKED",
            message=message,
            status_code=410,
        )


class InvalidStateError(APIError):
    """Business rule violation (400).

    Use when the token is valid but the resource's own lifecycle forbids
    the requested action, e.g. paying an invoice that is already paid.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVALID_STATE",
            message=message,
            status_code=400,
        )


class RateLimitedError(APIError):
    """Too many requests from one client (429)."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            code="RATE_LIMITED",
            message="Too many requests. Please try again later.",
            status_code=429,
            headers={"Retry-After": str(max(retry_after, 1))},
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
