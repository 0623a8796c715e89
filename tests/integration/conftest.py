"""Shared fixtures for integration tests.

The application under test is built with ``create_app`` around a small
inventory API and a Stripe webhook, so requests travel through the whole
stack: middleware, extraction, validation, handlers and response writing.
"""

import hashlib
import hmac
import time
from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any

import pytest
import stripe
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, Field
from starlette.requests import Request

from typedapi.api.main import create_app
from typedapi.api.router import TypedRouter
from typedapi.core.config import Settings, WebhookConfig, get_settings
from typedapi.core.context import RequestContext
from typedapi.core.exceptions import UnauthorizedError, ValidationError
from typedapi.webhooks.registry import on_event, register_webhook
from typedapi.webhooks.stripe import StripeProvider

STRIPE_SECRET = "whsec_integration"
PAYMENTS_WEBHOOK_PATH = "/hooks/payments"


class Item(BaseModel):
    """An inventory item."""

    id: str
    name: str = Field(serialization_alias="Name")
    tags: list[str] = []


class UpdateItemRequest(BaseModel):
    class Path(BaseModel):
        id: str

    class Query(BaseModel):
        filter: str | None = Field(default=None, alias="Filter")

    class Body(BaseModel):
        name: str = Field(alias="Name", min_length=1)
        tags: list[str] = Field(default_factory=list, alias="Tags")

    path: Path
    query: Query
    body: Body


class ItemResponse(BaseModel):
    class Headers(BaseModel):
        version: str = Field(serialization_alias="X-Item-Version")

    body: Item
    headers: Headers


class GetItemRequest(BaseModel):
    class Path(BaseModel):
        id: str

    class Query(BaseModel):
        limit: int = Field(default=10, ge=1, le=100)

    class Headers(BaseModel):
        api_key: str | None = Field(default=None, alias="X-API-Key")

    path: Path
    query: Query
    headers: Headers

    def validate(self) -> None:  # type: ignore[override]
        if self.path.id == "locked" and self.headers.api_key is None:
            raise UnauthorizedError("api key required")


class ArchiveItemRequest(BaseModel):
    class Path(BaseModel):
        id: str

    class Query(BaseModel):
        start: int = 0
        end: int = 0

        def validate(self) -> None:
            if self.end < self.start:
                raise ValidationError("end must not precede start")

    path: Path
    query: Query


class OrderMeta(BaseModel):
    order_id: str


async def update_item(ctx: Request, req: UpdateItemRequest) -> ItemResponse:
    """Replace an item's name and tags."""
    item = Item(id=req.path.id, name=req.body.name, tags=req.body.tags)
    return ItemResponse(body=item, headers=ItemResponse.Headers(version="2"))


async def get_item(ctx: Request, req: GetItemRequest) -> ItemResponse:
    if req.path.id == "broken":
        msg = "inventory database unreachable"
        raise RuntimeError(msg)
    item = Item(id=req.path.id, name=f"item {req.path.id}", tags=["limit"] * min(req.query.limit, 2))
    return ItemResponse(body=item, headers=ItemResponse.Headers(version="1"))


def archive_item(ctx: Request, req: ArchiveItemRequest) -> None:
    pass


@pytest.fixture
def payments() -> list[tuple[str, Any]]:
    """Payment intents received by the payments webhook handler."""
    return []


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_name="Inventory API",
        app_version="1.2.0",
        debug=False,
        openapi_url="/openapi.json",
        webhook_config=WebhookConfig(stripe_webhook_secret=STRIPE_SECRET),
    )


@pytest.fixture
def app(settings: Settings, payments: list[tuple[str, Any]]) -> FastAPI:
    def payment_succeeded(
        ctx: Request, payment: stripe.PaymentIntent, meta: OrderMeta | None
    ) -> None:
        """Record a successful payment."""
        payments.append((payment.id, meta))

    def routes(router: TypedRouter) -> None:
        router.put("/items/{id}", tags=["items"])(update_item)
        router.get("/items/{id}", tags=["items"])(get_item)
        router.post("/items/{id}/archive", tags=["items"])(archive_item)
        handle = register_webhook(
            StripeProvider(settings=settings),
            on_event("payment_intent.succeeded", payment_succeeded),
        )
        router.webhook(PAYMENTS_WEBHOOK_PATH, handle, tags=["webhooks"])

    return create_app(settings, configure=routes)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.fixture
def stripe_signature() -> Callable[[bytes], str]:
    """Sign a payload the way Stripe does for the configured secret."""

    def sign(payload: bytes, secret: str = STRIPE_SECRET) -> str:
        timestamp = int(time.time())
        signed = f"{timestamp}.".encode() + payload
        digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return sign


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Clear the settings cache before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Reset the correlation id around each test."""
    RequestContext.clear()
    yield
    RequestContext.clear()
