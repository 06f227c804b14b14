"""Custom exceptions for the NewTube application.

This module defines all custom exceptions used throughout the application.
All exceptions inherit from NewTubeError for easy catching.

Exception classes include context dictionaries for structured logging
and debugging. Use the `context` property to access additional details.
"""

from typing import Any


class NewTubeError(Exception):
    """Base exception for all NewTube errors.

    Provides a context dictionary for structured error information.

    Attributes:
        context: Dictionary with additional error context

    Example:
        >>> try:
        ...     raise NewTubeError("Something went wrong", context={"video_id": "abc"})
        ... except NewTubeError as e:
        ...     print(f"Error: {e}, Context: {e.context}")
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Initialize NewTubeError.

        Args:
            message: Error message
            context: Optional dictionary with additional context
        """
        self.context = context or {}
        super().__init__(message)

    def with_context(self, **kwargs: Any) -> "NewTubeError":
        """Add additional context to the exception.

        Args:
            **kwargs: Key-value pairs to add to context

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization.

        Returns:
            Dictionary with error type, message, and context
        """
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "context": self.context,
        }


# ============================================
# Storage Errors
# ============================================


class DatabaseError(NewTubeError):
    """Base exception for database-related errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        operation: str | None = None,
    ) -> None:
        """Initialize DatabaseError.

        Args:
            message: Error message
            context: Additional context
            operation: Database operation that failed (e.g., "upsert_video")
        """
        ctx = context or {}
        if operation:
            ctx["operation"] = operation
        super().__init__(message, context=ctx)


class CatalogWriteError(DatabaseError):
    """Raised when a catalog transaction fails.

    Nothing from the failed transaction is visible afterwards and the
    archive ledger is left untouched.

    Attributes:
        video_id: Video whose write was aborted
    """

    def __init__(
        self,
        message: str,
        video_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize CatalogWriteError.

        Args:
            message: Error message
            video_id: Video whose write was aborted
            context: Additional context
        """
        ctx = context or {}
        if video_id:
            ctx["video_id"] = video_id
        self.video_id = video_id
        super().__init__(message, context=ctx, operation="catalog_write")


class LedgerError(NewTubeError):
    """Base exception for archive ledger errors."""


class LedgerWriteError(LedgerError):
    """Raised when an id cannot be durably appended to (or removed from) the ledger.

    Attributes:
        item_id: Item that could not be recorded
    """

    def __init__(
        self,
        message: str,
        item_id: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize LedgerWriteError.

        Args:
            message: Error message
            item_id: Item that could not be recorded
            context: Additional context
        """
        ctx = context or {}
        ctx["item_id"] = item_id
        self.item_id = item_id
        super().__init__(message, context=ctx)


# ============================================
# Fetch Tool Errors
# ============================================


class FetchError(NewTubeError):
    """Base exception for external fetch tool failures.

    Attributes:
        item_id: Video id or channel URL the call was about
        operation: Fetch tool operation (list_items, fetch_metadata, ...)
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        item_id: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize FetchError.

        Args:
            message: Error message
            item_id: Video id or channel URL
            operation: Fetch tool operation
            context: Additional context
        """
        ctx = context or {}
        if item_id:
            ctx["item_id"] = item_id
        if operation:
            ctx["operation"] = operation
        self.item_id = item_id
        self.operation = operation
        super().__init__(message, context=ctx)


class TransientFetchError(FetchError):
    """Timeout, rate-limit or network failure. Retried with backoff."""

    retryable = True


class StructuralFetchError(FetchError):
    """The item is permanently unavailable (deleted, private). Never retried."""


# ============================================
# Acquisition Errors
# ============================================


class AcquisitionError(NewTubeError):
    """Base exception for acquisition failures."""

    def __init__(
        self,
        message: str,
        video_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize AcquisitionError.

        Args:
            message: Error message
            video_id: Video being acquired
            context: Additional context
        """
        ctx = context or {}
        if video_id:
            ctx["video_id"] = video_id
        self.video_id = video_id
        super().__init__(message, context=ctx)


class AcquisitionFailedError(AcquisitionError):
    """Raised when transient failures exhausted their retry budget.

    Attributes:
        attempts: Number of attempts made
    """

    def __init__(
        self,
        message: str,
        video_id: str | None = None,
        attempts: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize AcquisitionFailedError.

        Args:
            message: Error message
            video_id: Video being acquired
            attempts: Number of attempts made
            context: Additional context
        """
        ctx = context or {}
        if attempts is not None:
            ctx["attempts"] = attempts
        self.attempts = attempts
        super().__init__(message, video_id=video_id, context=ctx)


class LockTimeoutError(NewTubeError):
    """Raised when a keyed lock could not be obtained in time."""

    def __init__(self, key: str, context: dict[str, Any] | None = None) -> None:
        """Initialize LockTimeoutError.

        Args:
            key: Lock key
            context: Additional context
        """
        ctx = context or {}
        ctx["key"] = key
        self.key = key
        super().__init__(f"Timed out acquiring lock for {key}", context=ctx)


# ============================================
# Serving Errors
# ============================================


class MediaNotFoundError(NewTubeError):
    """Raised when a requested item is absent and will not be served.

    Attributes:
        video_id: Requested id
    """

    def __init__(self, video_id: str, context: dict[str, Any] | None = None) -> None:
        """Initialize MediaNotFoundError.

        Args:
            video_id: Requested id
            context: Additional context
        """
        ctx = context or {}
        ctx["video_id"] = video_id
        self.video_id = video_id
        super().__init__(f"Media {video_id} not found", context=ctx)


# ============================================
# Configuration Errors
# ============================================


class ConfigError(NewTubeError):
    """Base exception for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_path: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize ConfigError.

        Args:
            message: Error message
            config_path: Path to the config file/key
            context: Additional context
        """
        ctx = context or {}
        if config_path:
            ctx["config_path"] = config_path
        super().__init__(message, context=ctx)


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails.

    Attributes:
        field: Field that failed validation (optional)
        value: Invalid value (optional)
        reason: Validation failure reason (optional)
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        value: Any = None,
        reason: str | None = None,
        config_path: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize ConfigValidationError.

        Args:
            message: Error message (for simple usage)
            field: Field that failed validation
            value: Invalid value
            reason: Validation failure reason
            config_path: Path to config file
            context: Additional context
        """
        ctx = context or {}

        self.field = field
        self.value = value
        self.reason = reason

        if field and reason:
            ctx.update({"field": field, "reason": reason})
            if value is not None:
                ctx["value"] = str(value)
            final_message = f"Config validation failed for '{field}': {reason}"
        elif message:
            final_message = message
        else:
            final_message = "Configuration validation failed"

        super().__init__(final_message, config_path=config_path, context=ctx)


__all__ = [
    "NewTubeError",
    "DatabaseError",
    "CatalogWriteError",
    "LedgerError",
    "LedgerWriteError",
    "FetchError",
    "TransientFetchError",
    "StructuralFetchError",
    "AcquisitionError",
    "AcquisitionFailedError",
    "LockTimeoutError",
    "MediaNotFoundError",
    "ConfigError",
    "ConfigValidationError",
]
