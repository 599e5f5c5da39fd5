"""
Clutch Backend — Custom Exception Hierarchy
=============================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Every failure leaves the API as the same envelope
       {success: false, error: CODE, message}. Carrying the code and HTTP status
       on the exception keeps services free of HTTP concerns.
How:   Each exception class carries a message, a SCREAMING_SNAKE error code,
       an HTTP status and an optional context dict. Global exception handlers
       (registered in main.py) turn them into JSON envelopes.
Who:   Raised by services, dependencies and middleware; caught by global handlers.
When:  During request processing when recoverable errors occur.

Exception Hierarchy:
    ClutchError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── ForbiddenError           → 403 Forbidden (ownership / role mismatch)
    ├── NotFoundError            → 404 Not Found (<RESOURCE>_NOT_FOUND)
    ├── ConflictError            → 409 Conflict (duplicate code, VIN, ...)
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── UnexpectedError          → 500 Internal Server Error (store failure)
"""

from typing import Any, Dict, Optional


class ClutchError(Exception):
    """
    Base exception for all Clutch application errors.

    Attributes:
        message:      User-facing error description (safe to return in API response)
        code:         Machine-readable error code returned as the envelope's `error`
        status_code:  HTTP status the global handler responds with
        context:      Additional debug info (only returned in development mode)
    """

    status_code: int = 500
    default_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ClutchError):
    """
    Raised when client input fails validation.

    When:    Missing required fields, malformed ids, bad numbers/dates,
             business-rule rejections (expired discount, insufficient stock).
    HTTP:    400 Bad Request
    """

    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        code: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, code=code, context=ctx)
        self.field = field


class AuthenticationError(ClutchError):
    """Raised when the bearer token is missing, malformed or expired."""

    status_code = 401
    default_code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Authentication required", code: Optional[str] = None):
        super().__init__(message=message, code=code)


class ForbiddenError(ClutchError):
    """
    Raised when the caller may not perform the operation.

    When:    Ownership Guard rejects a mutation, or the caller's role is
             not in the route's allowed roles.
    HTTP:    403 Forbidden
    """

    status_code = 403
    default_code = "UNAUTHORIZED"

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class NotFoundError(ClutchError):
    """
    Raised when a requested record does not exist.

    The code is derived from the resource label, e.g. BOOKING_NOT_FOUND.
    HTTP:    404 Not Found
    """

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        code: Optional[str] = None,
        message: Optional[str] = None,
    ):
        label = resource.replace("-", "_").replace(" ", "_").upper()
        ctx: Dict[str, Any] = {"resource": resource}
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(
            message=message or f"{resource.replace('_', ' ').capitalize()} not found",
            code=code or f"{label}_NOT_FOUND",
            context=ctx,
        )


class ConflictError(ClutchError):
    """Raised on uniqueness violations (duplicate discount code, VIN, ...)."""

    status_code = 409
    default_code = "CONFLICT"

    def __init__(
        self,
        message: str = "Resource already exists",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class UnexpectedError(ClutchError):
    """
    Raised when the document store fails unexpectedly.

    Security Note:
        The message returned to the client is always generic.
        The underlying error is logged server-side and only echoed back
        when DEBUG is enabled.
    """

    status_code = 500
    default_code = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred. Please try again later.",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class RateLimitExceededError(ClutchError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    Response includes a Retry-After header for HTTP-compliant clients.
    """

    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
