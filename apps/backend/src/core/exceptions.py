"""Domain exceptions shared by the chat streaming pipeline.

Every error carries a stable ``error_code`` for log tagging and the HTTP
status used when it escapes before the event stream has begun. Once the
stream is open the same errors are delivered as an ``error`` frame instead.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class DomainError(Exception):
    """Base class for domain-specific errors."""

    message: str
    error_code: str = "domain_error"
    status_code: int = 400

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message


class AuthenticationError(DomainError):
    def __init__(self, message: str = "Could not validate credentials") -> None:
        super().__init__(
            message=message, error_code="unauthenticated", status_code=401
        )


class InvalidRequestError(DomainError):
    """Malformed body, empty message list or missing route context."""

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(
            message=message, error_code="invalid_request", status_code=400
        )


class AuthorizationError(DomainError):
    def __init__(self, message: str = "You do not have access to this book.") -> None:
        super().__init__(
            message=message, error_code="permission_denied", status_code=403
        )


class NotFoundError(DomainError):
    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message=message, error_code="not_found", status_code=404)


class QuotaExhaustedError(DomainError):
    def __init__(
        self, message: str = "AI monthly limit reached. Please upgrade your plan."
    ) -> None:
        super().__init__(
            message=message, error_code="resource_exhausted", status_code=429
        )


class UpstreamGenerationError(DomainError):
    """A model, embedding or retrieval provider call failed."""

    def __init__(self, message: str = "AI generation failed") -> None:
        super().__init__(message=message, error_code="upstream_error", status_code=502)


class CancelledByClient(DomainError):
    """The client closed the stream; a normal early termination."""

    def __init__(self, message: str = "Client disconnected") -> None:
        super().__init__(message=message, error_code="cancelled", status_code=499)
