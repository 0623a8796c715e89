"""Request-scoped context: correlation and request identifiers."""

import uuid
from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class RequestContext:
    """Async-safe storage for the current request's correlation id."""

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def clear() -> None:
        """Reset the context at the end of a request."""
        _correlation_id_var.set(None)


def generate_correlation_id() -> str:
    """Generate a UUID4 correlation id."""
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a request id in the form ``req-<uuid4>``."""
    return f"req-{uuid.uuid4()}"
