"""Service-specific exceptions for quest progress tracking.

Every failure a caller can observe is a typed exception. A genuinely empty
state (no progress yet) is returned as data, never signalled by an error
being swallowed.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base exception for all quest service errors.

    Carries an error code for categorization, context data for debugging and
    a message that is safe to show to the end user.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        user_message: str | None = None
    ):
        """Initialize service error.

        Args:
            message: Technical error message for logging
            error_code: Unique error code for categorization
            context: Additional context data for debugging
            user_message: User-friendly error message
        """
        super().__init__(message)
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.user_message = user_message or message

    def __str__(self) -> str:
        """Return technical error message."""
        return super().__str__()

    def get_user_message(self) -> str:
        """Get user-friendly error message."""
        return self.user_message


class ValidationError(ServiceError):
    """Exception for invalid domain values."""

    def __init__(self, field: str, message: str, **kwargs):
        super().__init__(
            f"Validation failed for {field}: {message}",
            error_code="VALIDATION_FAILED",
            context={"field": field},
            user_message=message,
            **kwargs
        )
        self.field = field


class NotFoundError(ServiceError):
    """Exception for missing progress documents or objectives.

    Raised when an objective id is unknown to the catalog, when the user has
    no progress document for the current period, or when the document holds
    no state for the objective.
    """

    def __init__(self, resource_type: str, resource_id: str, **kwargs):
        """Initialize not found error.

        Args:
            resource_type: Type of resource (e.g., "objective", "quest progress")
            resource_id: ID of the missing resource
            **kwargs: Additional arguments passed to parent
        """
        super().__init__(
            f"{resource_type.capitalize()} not found: {resource_id}",
            error_code="NOT_FOUND",
            context={"resource_type": resource_type, "resource_id": resource_id},
            user_message=f"{resource_type.capitalize()} not found.",
            **kwargs
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class NotCompletedError(ServiceError):
    """Exception for claims made before the objective is completed."""

    def __init__(self, objective_id: str, **kwargs):
        super().__init__(
            f"Objective not completed yet: {objective_id}",
            error_code="NOT_COMPLETED",
            context={"objective_id": objective_id},
            user_message="Complete this objective before claiming its reward.",
            **kwargs
        )
        self.objective_id = objective_id


class AlreadyClaimedError(ServiceError):
    """Exception for duplicate claim attempts."""

    def __init__(self, objective_id: str, **kwargs):
        super().__init__(
            f"Objective already claimed: {objective_id}",
            error_code="ALREADY_CLAIMED",
            context={"objective_id": objective_id},
            user_message="You've already claimed this reward!",
            **kwargs
        )
        self.objective_id = objective_id


class PreconditionFailedError(ServiceError):
    """Exception for a lost race on a version-guarded write.

    The document changed between read and write. Callers retry with a fresh
    read; the progress engine does this itself.
    """

    def __init__(self, period_key: str, expected_version: int, **kwargs):
        super().__init__(
            f"Progress document {period_key} changed since version {expected_version}",
            error_code="PRECONDITION_FAILED",
            context={"period_key": period_key, "expected_version": expected_version},
            user_message="Your progress was updated concurrently. Please try again.",
            **kwargs
        )
        self.period_key = period_key
        self.expected_version = expected_version


class CatalogUnavailableError(ServiceError):
    """Exception for failures reading the quest catalog."""

    def __init__(self, operation: str, context: dict[str, Any] | None = None, **kwargs):
        super().__init__(
            f"Quest catalog unavailable during {operation}",
            error_code="CATALOG_UNAVAILABLE",
            context={"operation": operation, **(context or {})},
            user_message="Quests are temporarily unavailable.",
            **kwargs
        )
        self.operation = operation


class StoreUnavailableError(ServiceError):
    """Exception for failures reading or writing progress documents."""

    def __init__(self, operation: str, context: dict[str, Any] | None = None, **kwargs):
        super().__init__(
            f"Progress store unavailable during {operation}",
            error_code="STORE_UNAVAILABLE",
            context={"operation": operation, **(context or {})},
            user_message="Quest progress is temporarily unavailable.",
            **kwargs
        )
        self.operation = operation
