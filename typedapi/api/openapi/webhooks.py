"""Operation assembly for webhook routes.

Webhook operations describe the provider instead of a handler: an
``x-webhook-provider`` block, an ``x-webhook-events`` list (one entry per
bound handler, or the provider's advertised event types when none are
bound) and the provider's own request and response shapes. Providers
commonly name those shapes ``WebhookRequest``, ``WebhookResponse`` and
``WebhookErrorResponse``; such components are prefixed with the provider
name so several providers can share one document.
"""

import inspect
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from typedapi.api.constants import BODY_SECTION
from typedapi.api.introspection import request_sections, section_model
from typedapi.api.openapi.content import json_content
from typedapi.api.openapi.models import Operation, RequestBody, ResponseObject, Schema
from typedapi.api.openapi.naming import to_pascal_case
from typedapi.api.registry import RouteInfo
from typedapi.core.types import JsonObject

if TYPE_CHECKING:
    from typedapi.api.openapi.builder import SchemaBuilder
    from typedapi.api.openapi.generator import OperationGenerator
    from typedapi.webhooks.provider import WebhookProvider
    from typedapi.webhooks.registry import WebhookHandle

GENERIC_WEBHOOK_TYPES = frozenset(
    {"WebhookRequest", "WebhookResponse", "WebhookErrorResponse"}
)

SUCCESS_DESCRIPTION = "Webhook processed successfully"
ERROR_DESCRIPTION = "Invalid webhook payload or signature"


def webhook_component(
    builder: "SchemaBuilder", provider: "WebhookProvider", tp: type[BaseModel]
) -> Schema:
    """Reference to the component describing a provider request or response type.

    Types with a structured body are described by that body's fields.
    """
    name = None
    if tp.__name__ in GENERIC_WEBHOOK_TYPES:
        name = to_pascal_case(provider.provider_info().name) + tp.__name__

    body = request_sections(tp).get(BODY_SECTION)
    model = section_model(body) if body is not None else None
    return builder.named_schema(tp, name=name, model=model)


def fallback_success_schema() -> Schema:
    return Schema(
        type="object",
        properties={
            "received": Schema(
                type="boolean",
                description="Whether the webhook was received successfully",
            )
        },
        required=["received"],
    )


def fallback_error_schema() -> Schema:
    return Schema(
        type="object",
        properties={
            "received": Schema(
                type="boolean",
                description="Whether the webhook was received (false for errors)",
            ),
            "error": Schema(
                type="string",
                description="Error message describing what went wrong",
            ),
        },
        required=["received", "error"],
    )


def webhook_event_entries(
    handle: "WebhookHandle", builder: "SchemaBuilder"
) -> list[JsonObject]:
    """``x-webhook-events`` entries, sorted by event type."""
    handlers = handle.handlers_metadata()
    if not handlers:
        event_types = sorted(handle.provider.valid_event_types())
        return [{"event": event} for event in event_types]

    entries = []
    for meta in handlers:
        entry: dict[str, Any] = {
            "event": meta.event_type,
            "operationId": meta.handler_name,
        }
        description = inspect.getdoc(meta.handler)
        if description:
            entry["description"] = description
        if meta.user_metadata_type is not None:
            entry["userPayloadSchema"] = builder.schema_for(
                meta.user_metadata_type, nullable=False
            ).to_dict()
        entries.append(entry)
    return entries


def build_webhook_operation(
    route: RouteInfo, operation: Operation, generator: "OperationGenerator"
) -> Operation:
    """Fill ``operation`` for a route mounted from a webhook handle."""
    handle = route.webhook
    provider = handle.provider
    builder = generator.builder

    operation.summary = f"Webhook endpoint for {route.handler_name}"
    operation.description = (
        "Webhook endpoint that receives events from external services"
    )

    info = provider.provider_info()
    operation.extensions["x-webhook-provider"] = {
        "name": info.name,
        "website": info.website,
        "docs": info.docs_url,
    }
    events = webhook_event_entries(handle, builder)
    if events:
        operation.extensions["x-webhook-events"] = events

    operation.request_body = RequestBody(
        description="Webhook event payload",
        required=True,
        content=json_content(
            webhook_component(builder, provider, provider.request_type)
        ),
    )

    success_type = provider.success_response_type
    success_schema = (
        webhook_component(builder, provider, success_type)
        if success_type is not None
        else fallback_success_schema()
    )
    operation.responses["200"] = ResponseObject(
        description=SUCCESS_DESCRIPTION, content=json_content(success_schema)
    )

    error_type = provider.error_response_type
    error_schema = (
        webhook_component(builder, provider, error_type)
        if error_type is not None
        else fallback_error_schema()
    )
    operation.responses["400"] = ResponseObject(
        description=ERROR_DESCRIPTION, content=json_content(error_schema)
    )

    generator.add_standard_error_responses(operation, codes=("422", "500"))
    return operation
