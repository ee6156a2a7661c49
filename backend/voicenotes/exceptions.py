"""
VoiceNotes Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions, one per error scenario.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers in main.py turn them into JSON error responses.

Exception Hierarchy:
    VoiceNotesError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── DatabaseError            → 500 Internal Server Error
    ├── StorageError             → 500 Internal Server Error
    ├── IdentityProviderError    → 502 Bad Gateway
    ├── LLMServiceError          → 503 Service Unavailable
    └── CircuitBreakerOpenError  → 503 Service Unavailable
"""

from typing import Any, Dict, Optional


class VoiceNotesError(Exception):
    """
    Base exception for all VoiceNotes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, only partially returned)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(VoiceNotesError):
    """
    Client input broke a business rule (schema errors are FastAPI's 422).

    Examples: unsupported recording format, empty upload, unknown timezone.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(VoiceNotesError):
    """No session token, or the token failed verification."""

    def __init__(
        self,
        message: str = "Unauthorized",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(VoiceNotesError):
    """
    The caller is authenticated but does not own the resource.

    Raised whenever the authenticated user id differs from note.user_id, or
    when a recording path lies outside the caller's prefix.
    """

    def __init__(
        self,
        message: str = "You do not have access to this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(VoiceNotesError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; the service layer converts that
    None into this exception so routes never deal with status codes.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class StorageError(VoiceNotesError):
    """
    Recording upload, removal or lookup failed.

    Covers both the Supabase bucket and the local disk backend. The bucket
    response or OS error goes into context, never into the response body.
    """

    def __init__(
        self,
        message: str = "Recording storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class IdentityProviderError(VoiceNotesError):
    """The identity provider's Backend API failed or returned garbage."""

    def __init__(
        self,
        message: str = "The identity provider is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(VoiceNotesError):
    """
    Raised when the LLM (Gemini) service fails after all retries.

    HTTP 503: the upstream model is down, not our server, so the client should
    retry later. `retry_after` feeds the Retry-After header.
    """

    def __init__(
        self,
        message: str = "AI rephrasing service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(VoiceNotesError):
    """
    Raised when the circuit breaker is in OPEN state.

    State machine:
        CLOSED → (N consecutive failures) → OPEN
        OPEN → (recovery_timeout elapsed) → HALF_OPEN
        HALF_OPEN → success → CLOSED | failure → OPEN
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"Try again in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(VoiceNotesError):
    """
    Raised when database operations fail unexpectedly.

    The client always sees a generic message; the underlying error type is
    kept in context for the server log.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(VoiceNotesError):
    """Client exceeded the per-IP request budget for the current window."""

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
