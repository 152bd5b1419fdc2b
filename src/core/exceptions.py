"""Structured exception hierarchy for consistent error handling.

Every error raised by the data-access layer derives from RepokitError, which
carries an error code, a severity, structured context and the original
driver exception as its cause.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for logging and alerting
- **RepokitError**: Base exception with rich context and fingerprinting
- **Specialized exceptions**: Validation, lookup and database failures

Driver errors are never swallowed: database exceptions wrap the original
SQLAlchemy error as ``cause`` and prefix it with a human-readable message
such as "table migration failed".
"""

import hashlib
import traceback
from enum import Enum

from src.core.types import ErrorContext


class ErrorCode(Enum):
    """Standardized error codes for the Repokit data-access layer."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """An entity or argument failed validation before reaching the database."""

    NOT_FOUND = "NOT_FOUND"
    """No live record matched the requested identifier."""

    DATABASE_ERROR = "DATABASE_ERROR"
    """The database driver reported a failure."""

    MIGRATION_ERROR = "MIGRATION_ERROR"
    """Creating or migrating a table failed."""

    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    """A write violated a database constraint (e.g. a unique index)."""

    CONNECTION_ERROR = "CONNECTION_ERROR"
    """The database could not be reached or the handle is not open."""


class Severity(Enum):
    """Severity levels for errors."""

    LOW = "LOW"
    """Expected errors caused by caller input."""

    MEDIUM = "MEDIUM"
    """Errors that affect a single operation."""

    HIGH = "HIGH"
    """Errors that affect data integrity or a whole feature."""

    CRITICAL = "CRITICAL"
    """Errors that make the database unusable."""


class RepokitError(Exception):
    """Base exception class for all Repokit exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        self.stack_trace = traceback.format_stack()[:-1]
        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for grouping errors raised from the same place.

        Returns:
            str: A short hash of the error type, code and raising location.
        """
        max_frames = 5
        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"

        for frame in self.stack_trace[-max_frames:]:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def should_alert(self) -> bool:
        """Whether the error warrants attention (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        """Return the error code and message."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return a detailed representation of the exception."""
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(RepokitError):
    """Raised when an entity or argument is rejected before any SQL is issued."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class NotFoundError(RepokitError):
    """Raised when no live record matches the requested identifier."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class DatabaseError(RepokitError):
    """Raised when the database driver reports a failure.

    The driver exception is kept as ``cause`` and its text is appended to the
    message so the prefix reads like "age query failed: <driver error>".

    Args:
        message: Human-readable prefix describing the failed operation
        cause: The original driver exception
        error_code: Error code (defaults to DATABASE_ERROR)
        severity: Severity level (defaults to HIGH)
        context: Additional context information about the error
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        error_code: str | ErrorCode = ErrorCode.DATABASE_ERROR,
        severity: Severity = Severity.HIGH,
        context: ErrorContext | None = None,
    ) -> None:
        full_message = f"{message}: {cause}" if cause is not None else message
        super().__init__(error_code, full_message, severity, context, cause)


class MigrationError(DatabaseError):
    """Raised when a table or schema cannot be created."""

    def __init__(
        self,
        message: str = "table migration failed",
        cause: Exception | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message, cause, ErrorCode.MIGRATION_ERROR, Severity.CRITICAL, context
        )


class ConstraintViolationError(DatabaseError):
    """Raised when a write violates a constraint such as the unique e-mail index."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message, cause, ErrorCode.CONSTRAINT_VIOLATION, Severity.MEDIUM, context
        )


class DatabaseConnectionError(DatabaseError):
    """Raised when the database is unreachable or the handle is not open."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message, cause, ErrorCode.CONNECTION_ERROR, Severity.CRITICAL, context
        )
