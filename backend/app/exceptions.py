"""
SnipVault Backend — Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for every failure the API can report.
Why:   Each class maps to exactly one HTTP status code and one error body shape,
       in both the FastAPI server and the serverless handler.
How:   Each exception carries a user-safe message and an optional context dict.
       The context is logged server-side and only selectively returned.
Who:   Raised by services, dependencies and the identity adapter.

Exception Hierarchy:
    SnipVaultError (base)
    ├── ValidationError            → 400 Bad Request (per-field messages)
    ├── MalformedIdentifierError   → 400 Bad Request
    ├── AuthenticationError        → 401 Unauthorized
    ├── NotFoundError              → 404 Not Found (missing OR not yours)
    ├── RateLimitExceededError     → 429 Too Many Requests
    └── UpstreamUnavailableError   → 500 Internal Server Error (client may retry)
"""

from typing import Any, Dict, List, Optional


class SnipVaultError(Exception):
    """
    Base exception for all SnipVault application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, NOT returned unless a handler opts in)
    """

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SnipVaultError):
    """
    Raised when a request body fails validation.

    `errors` is a list of {"field": ..., "message": ...} entries, one per
    problem, so the client can attach each message to its form input.

    Example response:
        {
            "error": "validation_error",
            "message": "Validation failed",
            "details": [{"field": "title", "message": "Title is required"}]
        }
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[List[Dict[str, str]]] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if errors is None:
            errors = [{"field": field or "", "message": message}] if field else []
        ctx = context or {}
        ctx["errors"] = errors
        super().__init__(message=message, context=ctx)
        self.errors = errors
        self.field = field

    @classmethod
    def from_pydantic(cls, exc_errors: List[Dict[str, Any]]) -> "ValidationError":
        """
        Build from pydantic's `errors()` list (or FastAPI's RequestValidationError).

        The leading "body" location segment FastAPI adds is dropped so both
        transports report identical field names.
        """
        errors = []
        for err in exc_errors:
            loc = [str(part) for part in err.get("loc", ()) if part != "body"]
            message = str(err.get("msg", "Invalid value"))
            # pydantic prefixes messages raised from validators with "Value error, "
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.append({"field": ".".join(loc), "message": message})
        return cls(message="Validation failed", errors=errors)


class MalformedIdentifierError(SnipVaultError):
    """
    Raised when a snippet id does not have the shape of a snippet id.

    Checked before touching the store, so a garbage id never costs a query.
    """

    status_code = 400
    error_code = "invalid_id"

    def __init__(self, raw_id: str = "", context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["raw_id"] = raw_id
        super().__init__(message="Invalid snippet ID", context=ctx)


class AuthenticationError(SnipVaultError):
    """
    Raised when a bearer token is missing, malformed, expired or rejected.

    The message distinguishes "missing" from "expired" from "invalid" only;
    the underlying verification error stays in the context for the logs.
    """

    status_code = 401
    error_code = "unauthorized"

    def __init__(
        self,
        message: str = "Authentication failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(SnipVaultError):
    """
    Raised when a snippet does not exist OR is not visible/owned by the caller.

    Both cases produce the same message and status so a caller cannot probe
    for the existence of other users' private snippets.
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "snippet",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        super().__init__(message=f"{resource.capitalize()} not found", context=ctx)


class UpstreamUnavailableError(SnipVaultError):
    """
    Raised when the database or the identity provider cannot be reached.

    The client-facing message is always generic; the original error type is
    kept in the context for the server log. Nothing in the core retries these.
    """

    status_code = 500
    error_code = "upstream_unavailable"

    def __init__(
        self,
        message: str = "A backing service is temporarily unavailable. Please try again later.",
        service: str = "database",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["service"] = service
        super().__init__(message=message, context=ctx)
        self.service = service


class RateLimitExceededError(SnipVaultError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    Response includes a Retry-After header.
    """

    status_code = 429
    error_code = "rate_limit_exceeded"

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


# ══════════════════════════════════════════════════════════════════════════
# Error body rendering (shared by the FastAPI handlers and the serverless handler)
# ══════════════════════════════════════════════════════════════════════════

GENERIC_SERVER_ERROR = "An unexpected error occurred. Please try again or contact support."


def error_body(exc: SnipVaultError, request_id: str = "") -> Dict[str, Any]:
    """
    Uniform JSON body for an application error.

    Only `message` and validation `errors` reach the client; `context` stays
    in the server log.
    """
    body: Dict[str, Any] = {
        "error": exc.error_code,
        "message": exc.message,
        "request_id": request_id,
    }
    if isinstance(exc, ValidationError):
        body["details"] = exc.errors
    if isinstance(exc, UpstreamUnavailableError):
        body["retryable"] = True
    return body


def error_headers(exc: SnipVaultError) -> Dict[str, str]:
    if isinstance(exc, AuthenticationError):
        return {"WWW-Authenticate": "Bearer"}
    if isinstance(exc, RateLimitExceededError):
        return {"Retry-After": str(exc.retry_after)}
    return {}


def unexpected_error_body(request_id: str = "") -> Dict[str, Any]:
    return {
        "error": "internal_server_error",
        "message": GENERIC_SERVER_ERROR,
        "request_id": request_id,
    }
