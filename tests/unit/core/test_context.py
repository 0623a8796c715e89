"""Unit tests for typedapi/core/context.py."""

import asyncio
import uuid

import pytest

from typedapi.core.context import (
    RequestContext,
    generate_correlation_id,
    generate_request_id,
)


@pytest.mark.unit
class TestCoreContext:
    """Test suite for correlation id storage."""

    def test_set_and_get_correlation_id(self) -> None:
        """Test that a correlation id set in context can be read back."""
        RequestContext.set_correlation_id("test-correlation-id-123")

        assert RequestContext.get_correlation_id() == "test-correlation-id-123"

    def test_clear_resets_correlation_id(self) -> None:
        """Test that clearing the context removes the correlation id."""
        RequestContext.set_correlation_id("to-clear")
        RequestContext.clear()

        assert RequestContext.get_correlation_id() is None

    def test_default_is_none(self) -> None:
        """Test that no correlation id is set by default."""
        assert RequestContext.get_correlation_id() is None

    async def test_isolated_between_tasks(self) -> None:
        """Each task sees only the id it set."""

        async def worker(correlation_id: str) -> str | None:
            RequestContext.set_correlation_id(correlation_id)
            await asyncio.sleep(0)
            return RequestContext.get_correlation_id()

        results = await asyncio.gather(worker("a"), worker("b"), worker("c"))

        assert results == ["a", "b", "c"]

    def test_generate_correlation_id_is_uuid4(self) -> None:
        """Test that generated correlation ids are UUID4 strings."""
        value = generate_correlation_id()

        assert uuid.UUID(value).version == 4

    def test_generate_request_id_format(self) -> None:
        """Test the format of generated request ids."""
        value = generate_request_id()

        assert value.startswith("req-")
        assert uuid.UUID(value.removeprefix("req-")).version == 4
        assert generate_request_id() != value
