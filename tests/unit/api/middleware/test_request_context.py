"""Unit tests for RequestContextMiddleware."""

from collections.abc import AsyncGenerator
from uuid import UUID

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture

from typedapi.api.constants import CORRELATION_ID_HEADER
from typedapi.api.middleware.error_handler import register_exception_handlers
from typedapi.api.middleware.request_context import RequestContextMiddleware
from typedapi.core.context import RequestContext
from typedapi.core.exceptions import ExtractionError


@pytest.fixture
def app() -> FastAPI:
    application = FastAPI()
    register_exception_handlers(application)
    application.add_middleware(RequestContextMiddleware)

    @application.get("/context")
    async def context() -> dict[str, str | None]:
        return {"correlation_id": RequestContext.get_correlation_id()}

    @application.get("/fail")
    async def fail() -> None:
        raise ExtractionError("failed to parse query section")

    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.mark.unit
class TestRequestContextMiddleware:
    """Test correlation id handling."""

    async def test_uses_incoming_correlation_id(self, client: AsyncClient) -> None:
        """Test that an incoming correlation id is echoed."""
        response = await client.get(
            "/context", headers={CORRELATION_ID_HEADER: "incoming-id"}
        )

        assert response.json() == {"correlation_id": "incoming-id"}
        assert response.headers[CORRELATION_ID_HEADER] == "incoming-id"

    async def test_generates_uuid_when_missing(self, client: AsyncClient) -> None:
        """Test that a UUID4 correlation id is generated when absent."""
        response = await client.get("/context")

        generated = response.headers[CORRELATION_ID_HEADER]
        assert UUID(generated).version == 4
        assert response.json() == {"correlation_id": generated}

    async def test_each_request_gets_its_own_id(self, client: AsyncClient) -> None:
        """Test that separate requests get distinct ids."""
        first = await client.get("/context")
        second = await client.get("/context")

        assert first.headers[CORRELATION_ID_HEADER] != second.headers[CORRELATION_ID_HEADER]

    async def test_error_responses_carry_correlation_id(self, client: AsyncClient) -> None:
        """Test that error bodies carry the correlation id."""
        response = await client.get("/fail", headers={CORRELATION_ID_HEADER: "err-id"})

        assert response.status_code == 400
        assert response.headers[CORRELATION_ID_HEADER] == "err-id"
        assert response.json()["correlation_id"] == "err-id"

    async def test_context_cleared_after_request(self, client: AsyncClient) -> None:
        """Test that the request context is cleared afterwards."""
        await client.get("/context", headers={CORRELATION_ID_HEADER: "temp-id"})

        assert RequestContext.get_correlation_id() is None

    async def test_access_log(self, client: AsyncClient, mocker: MockerFixture) -> None:
        """Test that one access log line is written per request."""
        mock_logger = mocker.patch("typedapi.api.middleware.request_context.logger")

        await client.get("/context")

        mock_logger.info.assert_called_once()
        args, kwargs = mock_logger.info.call_args
        assert args[1:] == ("GET", "/context", 200)
        assert kwargs["status_code"] == 200
        assert kwargs["duration_ms"] >= 0
