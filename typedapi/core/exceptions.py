"""Structured exception hierarchy for request processing.

Every failure typedapi raises on purpose is a ``TypedAPIError``. The
subclasses encode how the failure is reported:

- **ExtractionError**: the raw request could not be read into its sections (400)
- **ValidationError**: a client-side constraint failed (400)
- **RequestValidationError**: per-section aggregation of client failures (400)
- **UnauthorizedError**: authentication or signature verification failed (401)
- **ServerFaultError**: an internal failure, reported generically (500)
- **ConfigurationError**: a bad registration, raised at startup, never per request

Errors carry a severity for alerting and a fingerprint for grouping.
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes attached to every typedapi error."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred."""

    EXTRACTION_ERROR = "EXTRACTION_ERROR"
    """The request could not be parsed into its declared sections."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input failed declarative or custom validation."""

    UNAUTHORIZED = "UNAUTHORIZED"
    """Authentication or webhook signature verification failed."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """A route or webhook was registered with an invalid shape."""


class Severity(Enum):
    """Severity levels used to decide log level and alerting."""

    LOW = "LOW"
    """Expected failures caused by caller input."""

    MEDIUM = "MEDIUM"
    """Failures that affect a single operation."""

    HIGH = "HIGH"
    """Failures that point at a security or integrity problem."""

    CRITICAL = "CRITICAL"
    """Failures that prevent the service from working at all."""


class TypedAPIError(Exception):
    """Base exception class for all typedapi exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code: int = 500

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
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
        """Hash the error type and the raising location for grouping."""
        max_frames = 5
        relevant_frames = self.stack_trace[-max_frames:]

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "typedapi/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether the error belongs to normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether the error should page someone (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ExtractionError(TypedAPIError):
    """Raised when a raw request cannot be read into its declared sections.

    Args:
        message: Description of the extraction failure
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.EXTRACTION_ERROR, message, Severity.LOW, context, cause
        )


class ValidationError(TypedAPIError):
    """Client-side validation failure.

    Custom ``validate`` hooks raise this to report caller mistakes; any other
    exception from a hook is treated as a server fault.

    Args:
        message: Description of the validation failure
        errors: Individual messages; defaults to ``[message]``
        error_code: Error code (defaults to VALIDATION_ERROR)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)
        self.errors = list(errors) if errors is not None else [message]


class RequestValidationError(ValidationError):
    """Aggregated client validation failures keyed by section name.

    Args:
        details: Messages per section (``path``, ``query``, ``headers``,
            ``cookies``, ``body`` or ``request``)
    """

    def __init__(self, details: dict[str, list[str]]) -> None:
        errors = [f"{key}: {msg}" for key, msgs in details.items() for msg in msgs]
        super().__init__("Validation failed", errors=errors)
        self.details = details


class UnauthorizedError(TypedAPIError):
    """Raised when authentication or signature verification fails.

    Args:
        message: Description of the authorization failure
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code = 401

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(ErrorCode.UNAUTHORIZED, message, Severity.HIGH, context, cause)


class ServerFaultError(TypedAPIError):
    """Internal failure whose detail must never reach the client.

    Args:
        message: Internal description, logged but not returned
        public_message: Text returned to the client
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        public_message: str = "Internal Server Error",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.INTERNAL_ERROR, message, Severity.HIGH, context, cause
        )
        self.public_message = public_message


class ConfigurationError(TypedAPIError):
    """Raised at registration time for routes or webhooks with an invalid shape."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.CONFIGURATION_ERROR, message, Severity.CRITICAL, context
        )
