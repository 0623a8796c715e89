"""Webhook providers and typed per-event dispatch."""

from typedapi.webhooks.provider import (
    WebhookEvent,
    WebhookProvider,
    WebhookProviderInfo,
)
from typedapi.webhooks.registry import (
    EventBinding,
    RegisteredEventHandler,
    WebhookHandle,
    on_event,
    register_webhook,
)

__all__ = [
    "EventBinding",
    "RegisteredEventHandler",
    "WebhookEvent",
    "WebhookHandle",
    "WebhookProvider",
    "WebhookProviderInfo",
    "on_event",
    "register_webhook",
]
