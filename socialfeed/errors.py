"""Typed error taxonomy for SocialFeed.

Every error carries an HTTP-style status code, a stable machine-readable
``code`` and a human-readable message. The codes are part of the integration
contract and must not change.

Categories:
    - validation (400): missing fields, self-request, malformed cursor
    - authorization (403): wrong role, privacy denial
    - not_found (404): unknown user, friendship or post
    - conflict (409): duplicate pending, already friends, already accepted
    - dependency (500): store unavailable or timed out (retryable)
"""

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Error classes exposed to callers."""

    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DEPENDENCY = "dependency"


class AppError(Exception):
    """Base class for errors surfaced to callers.

    Args:
        status_code: HTTP-style status code
        code: Stable machine-readable error code
        message: Human-readable message
        details: Optional structured context
    """

    category: ErrorCategory = ErrorCategory.DEPENDENCY
    retryable: bool = False

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for a response body."""
        return {
            "error": self.code,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.status_code}, {self.code!r}, {self.message!r})"


class InvalidRequestError(AppError):
    """400: the request is malformed or violates an input rule."""

    category = ErrorCategory.VALIDATION

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(400, code, message, details)


class AuthorizationError(AppError):
    """403: the caller may not perform this action."""

    category = ErrorCategory.AUTHORIZATION

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(403, code, message, details)


class NotFoundError(AppError):
    """404: the referenced user, friendship or post does not exist."""

    category = ErrorCategory.NOT_FOUND

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(404, code, message, details)


class ConflictError(AppError):
    """409: the request conflicts with the current state."""

    category = ErrorCategory.CONFLICT

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(409, code, message, details)


class DependencyError(AppError):
    """500: the store failed or timed out. Safe for the caller to retry."""

    category = ErrorCategory.DEPENDENCY
    retryable = True

    def __init__(
        self,
        message: str,
        code: str = "dependency_unavailable",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(500, code, message, details)


class ConditionFailedError(ConflictError):
    """A conditional store write found the item in an unexpected state."""

    def __init__(self, pk: str, sk: str, message: str = "Item already exists") -> None:
        super().__init__(
            "condition_failed",
            message,
            {"pk": pk, "sk": sk},
        )


class ItemNotFoundError(NotFoundError):
    """A store update targeted an item that does not exist."""

    def __init__(self, pk: str, sk: str) -> None:
        super().__init__(
            "item_not_found",
            "Item not found",
            {"pk": pk, "sk": sk},
        )


__all__ = [
    "AppError",
    "AuthorizationError",
    "ConditionFailedError",
    "ConflictError",
    "DependencyError",
    "ErrorCategory",
    "InvalidRequestError",
    "ItemNotFoundError",
    "NotFoundError",
]
