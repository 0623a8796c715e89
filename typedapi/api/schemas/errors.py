"""Error response bodies returned by typedapi routes.

These models are both the runtime error payloads and the
``ErrorResponse`` / ``ValidationErrorResponse`` components of the
generated OpenAPI document, so clients see exactly what is documented.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Generic error response structure."""

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["EXTRACTION_ERROR", "UNAUTHORIZED", "INTERNAL_ERROR"],
    )

    message: str = Field(
        ...,
        description="Error message",
        examples=["failed to parse body section: failed to decode JSON body"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details",
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    request_id: str | None = Field(
        default=None,
        description="Unique request identifier",
        examples=["req-550e8400-e29b-41d4-a716-446655440000"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
    )

    severity: str | None = Field(
        default=None,
        description="Error severity level",
        examples=["LOW", "HIGH"],
    )


class ValidationErrorResponse(ErrorResponse):
    """Validation error response with field-level details."""

    details: dict[str, list[str]] = Field(  # type: ignore[assignment]
        ...,
        description=(
            "Field-level validation errors (maps section names to arrays "
            "of error messages)"
        ),
        examples=[{"body": ["name is required"], "query": ["limit: too large"]}],
    )
