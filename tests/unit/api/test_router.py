"""Unit tests for typedapi/api/router.py."""

from collections.abc import Callable
from typing import Any

import orjson
import pytest
from fastapi import APIRouter
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException
from starlette.requests import Request

from typedapi.api.openapi.models import OpenAPIDocument
from typedapi.api.options import SecurityRequirement
from typedapi.api.registry import RouteRegistry
from typedapi.api.router import (
    TypedRouter,
    call_handler,
    handler_name,
    handler_types,
    join_path,
    validate_body_usage,
)
from typedapi.core.exceptions import (
    ConfigurationError,
    RequestValidationError,
    ServerFaultError,
    UnauthorizedError,
)

type RequestFactory = Callable[..., Request]


class GetItemRequest(BaseModel):
    class Path(BaseModel):
        item_id: int

    path: Path


class ItemResponse(BaseModel):
    class Body(BaseModel):
        item_id: int
        name: str

    body: Body


class CreateItemRequest(BaseModel):
    class Body(BaseModel):
        name: str = Field(alias="Name")

    body: Body


async def get_item(ctx: Request, req: GetItemRequest) -> ItemResponse:
    """Fetch one item."""
    return ItemResponse(body=ItemResponse.Body(item_id=req.path.item_id, name="widget"))


def delete_item(ctx: Request, req: GetItemRequest) -> None:
    return None


def find_item(ctx: Request, req: GetItemRequest) -> ItemResponse | None:
    return None


@pytest.mark.unit
class TestHelpers:
    """Test module-level helpers."""

    @pytest.mark.parametrize(
        ("prefix", "path", "expected"),
        [
            ("", "/items", "/items"),
            ("/api", "/items", "/api/items"),
            ("/api/", "items/", "/api/items"),
            ("", "/", "/"),
        ],
    )
    def test_join_path(self, prefix: str, path: str, expected: str) -> None:
        """Test joining prefixes and paths with single slashes."""
        assert join_path(prefix, path) == expected

    def test_handler_name(self) -> None:
        """Test the name used as operation id for handlers."""
        assert handler_name(get_item) == "get_item"

    def test_handler_types(self) -> None:
        """Test reading request and response types from annotations."""
        assert handler_types(get_item) == (GetItemRequest, ItemResponse)
        assert handler_types(delete_item) == (GetItemRequest, None)
        assert handler_types(find_item) == (GetItemRequest, ItemResponse)

    def test_handler_without_return_annotation(self) -> None:
        """Test that a missing return annotation means no response type."""

        def handler(ctx: Any, req: GetItemRequest):  # type: ignore[no-untyped-def]  # noqa: ANN202
            return None

        assert handler_types(handler) == (GetItemRequest, None)

    def test_handler_with_wrong_arity(self) -> None:
        """Test that handlers must take exactly two parameters."""

        def handler(req: GetItemRequest) -> None:
            return None

        with pytest.raises(ConfigurationError, match="must accept \\(ctx, request\\), got 1"):
            handler_types(handler)

    def test_handler_with_non_model_request(self) -> None:
        """Test that the request parameter must be a pydantic model."""

        def handler(ctx: Any, req: dict) -> None:  # type: ignore[type-arg]
            return None

        with pytest.raises(ConfigurationError, match="must be annotated with a pydantic model"):
            handler_types(handler)

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_body_rejected_on_read_only_methods(self, method: str) -> None:
        """Test that GET, HEAD and OPTIONS reject a Body section."""
        with pytest.raises(ConfigurationError, match="declares a Body section"):
            validate_body_usage(method, "/items", CreateItemRequest)

    def test_body_allowed_on_post(self) -> None:
        """Test that POST accepts a Body section."""
        validate_body_usage("POST", "/items", CreateItemRequest)
        validate_body_usage("GET", "/items/{item_id}", GetItemRequest)

    async def test_call_handler_sync_and_async(self) -> None:
        """Test that sync and async handlers are both awaited."""

        def sync_handler(ctx: Any, value: int) -> int:
            return value + 1

        async def async_handler(ctx: Any, value: int) -> int:
            return value * 2

        assert await call_handler(sync_handler, None, 1) == 2
        assert await call_handler(async_handler, None, 4) == 8


@pytest.mark.unit
class TestTypedRouterRegistration:
    """Test route registration."""

    def test_register_records_route_info(self) -> None:
        """Test that registration appends route metadata to the registry."""
        router = TypedRouter(prefix="/api")

        _, info = router.register(
            "get",
            "/items/{item_id}",
            get_item,
            tags=["items"],
            security=[SecurityRequirement.bearer("read")],
        )

        assert info.method == "GET"
        assert info.path == "/api/items/{item_id}"
        assert info.handler_name == "get_item"
        assert info.request_type is GetItemRequest
        assert info.response_type is ItemResponse
        assert info.options.tags == ("items",)
        assert info.options.security == (SecurityRequirement.bearer("read"),)
        assert router.registry.routes() == [info]

    def test_register_mounts_on_router(self) -> None:
        """Test that registration mounts an endpoint on the API router."""
        api_router = APIRouter()
        router = TypedRouter(api_router)

        router.register("GET", "/items/{item_id}", get_item)

        (mounted,) = api_router.routes
        assert mounted.path == "/items/{item_id}"  # type: ignore[attr-defined]
        assert "GET" in mounted.methods  # type: ignore[attr-defined]

    def test_decorators_return_handler(self) -> None:
        """Test that method decorators return the handler unchanged."""
        router = TypedRouter()

        decorated = router.get("/items/{item_id}")(get_item)
        router.delete("/items/{item_id}")(delete_item)

        assert decorated is get_item
        assert [info.method for info in router.registry.routes()] == ["GET", "DELETE"]

    def test_get_with_body_fails_at_registration(self) -> None:
        """Test that a GET handler with a body fails when registered."""
        router = TypedRouter()

        async def create(ctx: Request, req: CreateItemRequest) -> None:
            return None

        with pytest.raises(ConfigurationError):
            router.get("/items")(create)
        assert len(router.registry) == 0

    def test_shared_registry(self) -> None:
        """Test that routers can share one registry."""
        registry = RouteRegistry()
        TypedRouter(registry=registry).get("/a/{item_id}")(get_item)
        TypedRouter(registry=registry, prefix="/v2").get("/b/{item_id}")(get_item)

        assert [info.path for info in registry.routes()] == ["/a/{item_id}", "/v2/b/{item_id}"]

    def test_docs_route_is_registered_as_document(self) -> None:
        """Test that the docs route is recorded with the document type."""
        router = TypedRouter()

        info = router.docs_route("/openapi.json", title="Items")

        assert info.response_type is OpenAPIDocument
        assert info.request_type is None
        assert info.handler_name == "openapi_document"


@pytest.mark.unit
class TestEndpoint:
    """Test the per-request pipeline of a registered handler."""

    async def test_successful_request(self, make_request: RequestFactory) -> None:
        """Test a request flowing through extraction, handler and response."""
        endpoint, _ = TypedRouter().register("GET", "/items/{item_id}", get_item)

        response = await endpoint(make_request(path_params={"item_id": "7"}))

        assert response.status_code == 200
        assert orjson.loads(response.body) == {"item_id": 7, "name": "widget"}

    async def test_none_result_is_no_content(self, make_request: RequestFactory) -> None:
        """Test that a handler returning None produces 204."""
        endpoint, _ = TypedRouter().register("DELETE", "/items/{item_id}", delete_item)

        response = await endpoint(make_request("DELETE", path_params={"item_id": "7"}))

        assert response.status_code == 204

    async def test_validation_failure(self, make_request: RequestFactory) -> None:
        """Test that validation failures return 400 with details."""

        async def create(ctx: Request, req: CreateItemRequest) -> None:
            return None

        endpoint, _ = TypedRouter().register("POST", "/items", create)

        with pytest.raises(RequestValidationError) as exc_info:
            await endpoint(make_request("POST", body=b"{}"))

        assert exc_info.value.details == {"body": ["Name is required"]}

    async def test_handler_error_becomes_server_fault(
        self, make_request: RequestFactory
    ) -> None:
        """Test that unexpected handler errors become generic 500s."""

        async def broken(ctx: Request, req: GetItemRequest) -> None:
            raise ZeroDivisionError("division by zero")

        endpoint, _ = TypedRouter().register("GET", "/items/{item_id}", broken)

        with pytest.raises(ServerFaultError) as exc_info:
            await endpoint(make_request(path_params={"item_id": "1"}))

        assert exc_info.value.public_message == "Internal Server Error"
        assert isinstance(exc_info.value.cause, ZeroDivisionError)
        assert exc_info.value.context == {"handler": "broken"}

    @pytest.mark.parametrize(
        "error",
        [UnauthorizedError("token expired"), HTTPException(status_code=409, detail="conflict")],
    )
    async def test_typed_and_http_errors_propagate(
        self, make_request: RequestFactory, error: Exception
    ) -> None:
        """Test that typed and HTTP errors keep their status."""

        async def failing(ctx: Request, req: GetItemRequest) -> None:
            raise error

        endpoint, _ = TypedRouter().register("GET", "/items/{item_id}", failing)

        with pytest.raises(type(error)):
            await endpoint(make_request(path_params={"item_id": "1"}))

    async def test_sync_handler_receives_context(self, make_request: RequestFactory) -> None:
        """Test that a sync handler receives the Starlette request."""
        seen: list[Any] = []

        def remember(ctx: Request, req: GetItemRequest) -> None:
            seen.append((ctx, req.path.item_id))

        endpoint, _ = TypedRouter().register("GET", "/items/{item_id}", remember)
        request = make_request(path_params={"item_id": "3"})

        await endpoint(request)

        assert seen == [(request, 3)]
