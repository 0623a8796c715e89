"""Webhook provider contract.

A provider knows how to verify and normalize a raw webhook request coming
from one external service, and which response bodies that service
expects back.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel

from typedapi.core.exceptions import (
    RequestValidationError,
    ServerFaultError,
    TypedAPIError,
)


@dataclass(frozen=True)
class WebhookEvent:
    """A verified event.

    Attributes:
        type: Provider event type, e.g. ``"payment_intent.succeeded"``.
        provider_object: Provider payload handed to the event handler.
        user_meta_json: JSON of user metadata attached to the payload, if any.
    """

    type: str
    provider_object: Any = None
    user_meta_json: bytes | None = None


@dataclass(frozen=True)
class WebhookProviderInfo:
    """Identity of a provider, published in the OpenAPI document."""

    name: str
    website: str = ""
    docs_url: str = ""


class WebhookProvider(ABC):
    """Verifies requests from one external service and shapes its replies.

    ``request_type`` is a request model extracted like any other, typically
    a header section carrying the signature plus a raw ``bytes`` body.
    """

    request_type: ClassVar[type[BaseModel]]
    success_response_type: ClassVar[type[BaseModel] | None] = None
    error_response_type: ClassVar[type[BaseModel] | None] = None

    @abstractmethod
    def parse_request(self, request: BaseModel) -> WebhookEvent:
        """Verify ``request`` and normalize it into an event.

        Raises:
            Exception: Any failure; the request is answered with 401.
        """

    @abstractmethod
    def success_response(self) -> BaseModel | None:
        """Response sent for processed and ignored events."""

    @abstractmethod
    def error_response(self, exc: Exception) -> BaseModel | None:
        """Response sent when processing fails."""

    def valid_event_types(self) -> list[str]:
        """Event types the provider can emit; empty means unrestricted."""
        return []

    @abstractmethod
    def provider_info(self) -> WebhookProviderInfo:
        """Name, website and documentation link of the provider."""


def error_message(exc: BaseException) -> str:
    """Client-facing text of an exception, without error code prefixes."""
    if isinstance(exc, ServerFaultError):
        return exc.public_message
    if isinstance(exc, RequestValidationError):
        return "; ".join(msg for messages in exc.details.values() for msg in messages)
    if isinstance(exc, TypedAPIError):
        return exc.message
    return str(exc)
