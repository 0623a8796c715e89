"""Stripe webhook provider.

Signatures are verified with the official SDK
(``stripe.Webhook.construct_event``). Payment intent, subscription and
invoice events hand the SDK object to the handler and expose its
``metadata`` as user metadata; other events hand over the whole
``stripe.Event``.
"""

from typing import Any

import orjson
import stripe
from pydantic import BaseModel, Field

from typedapi.core.config import Settings, get_settings
from typedapi.core.exceptions import (
    ConfigurationError,
    UnauthorizedError,
    ValidationError,
)
from typedapi.webhooks.provider import (
    WebhookEvent,
    WebhookProvider,
    WebhookProviderInfo,
    error_message,
)

STRIPE_EVENT_TYPES = (
    # Payment intents
    "payment_intent.amount_capturable_updated",
    "payment_intent.canceled",
    "payment_intent.created",
    "payment_intent.partially_funded",
    "payment_intent.payment_failed",
    "payment_intent.processing",
    "payment_intent.requires_action",
    "payment_intent.succeeded",
    # Charges
    "charge.captured",
    "charge.expired",
    "charge.failed",
    "charge.pending",
    "charge.succeeded",
    "charge.updated",
    # Customers
    "customer.created",
    "customer.deleted",
    "customer.updated",
    "customer.subscription.created",
    "customer.subscription.deleted",
    "customer.subscription.updated",
    "customer.subscription.trial_will_end",
    # Invoices
    "invoice.created",
    "invoice.deleted",
    "invoice.finalized",
    "invoice.paid",
    "invoice.payment_action_required",
    "invoice.payment_failed",
    "invoice.payment_succeeded",
    "invoice.sent",
    "invoice.upcoming",
    "invoice.updated",
    "invoice.voided",
    # Subscription schedules
    "subscription_schedule.aborted",
    "subscription_schedule.canceled",
    "subscription_schedule.completed",
    "subscription_schedule.created",
    "subscription_schedule.expiring",
    "subscription_schedule.released",
    "subscription_schedule.updated",
    # Products and prices
    "price.created",
    "price.deleted",
    "price.updated",
    "product.created",
    "product.deleted",
    "product.updated",
    # Checkout
    "checkout.session.completed",
    "checkout.session.expired",
    # Setup intents
    "setup_intent.canceled",
    "setup_intent.created",
    "setup_intent.requires_action",
    "setup_intent.setup_failed",
    "setup_intent.succeeded",
)

# Event families whose data object is handed to handlers with its metadata
OBJECT_EVENT_PREFIXES = ("payment_intent.", "customer.subscription.", "invoice.")


class WebhookRequest(BaseModel):
    """Stripe webhook request: the signature header and the raw payload."""

    class Headers(BaseModel):
        stripe_signature: str = Field(
            alias="Stripe-Signature",
            description="Signature of the payload, computed with the endpoint secret",
        )
        content_type: str | None = Field(default=None, alias="Content-Type")

    headers: Headers
    body: bytes = b""

    def validate(self) -> None:  # type: ignore[override]
        """Reject requests without a signature or a body."""
        if not self.headers.stripe_signature:
            raise ValidationError("missing stripe signature header")
        if not self.body:
            raise ValidationError("empty webhook body")


class WebhookResponse(BaseModel):
    class Body(BaseModel):
        received: bool = True

    body: Body = Field(default_factory=Body)


class WebhookErrorResponse(BaseModel):
    class Body(BaseModel):
        received: bool = False
        error: str | None = None

    body: Body = Field(default_factory=Body)


class StripeProvider(WebhookProvider):
    """Verifies Stripe webhook signatures.

    Args:
        secret: Endpoint signing secret; read from
            ``WEBHOOK_CONFIG__STRIPE_WEBHOOK_SECRET`` when omitted.
        event_types: Event types to accept instead of the default list.
        tolerance: Maximum signature age in seconds.
        settings: Settings to read defaults from.

    Raises:
        ConfigurationError: If no secret is available.
    """

    request_type = WebhookRequest
    success_response_type = WebhookResponse
    error_response_type = WebhookErrorResponse

    def __init__(
        self,
        secret: str | None = None,
        *,
        event_types: tuple[str, ...] | list[str] = (),
        tolerance: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        config = (settings or get_settings()).webhook_config
        if secret is None and config.stripe_webhook_secret is not None:
            secret = config.stripe_webhook_secret.get_secret_value()
        if not secret:
            raise ConfigurationError("stripe webhook secret is not configured")
        self._secret = secret
        if tolerance is None:
            tolerance = config.stripe_tolerance_seconds
        self.tolerance = tolerance
        self._event_types = list(event_types) or list(STRIPE_EVENT_TYPES)

    def parse_request(self, request: BaseModel) -> WebhookEvent:
        """Verify the signature and build the event from the Stripe payload."""
        if not isinstance(request, WebhookRequest):
            msg = f"expected WebhookRequest, got {type(request).__name__}"
            raise TypeError(msg)
        try:
            event = stripe.Webhook.construct_event(
                request.body,
                request.headers.stripe_signature,
                self._secret,
                tolerance=self.tolerance,
            )
        except (stripe.SignatureVerificationError, ValueError) as exc:
            msg = f"stripe webhook signature verification failed: {exc}"
            raise UnauthorizedError(msg, cause=exc) from exc

        provider_object, user_meta = self._payload(event)
        return WebhookEvent(
            type=event.type, provider_object=provider_object, user_meta_json=user_meta
        )

    @staticmethod
    def _payload(event: stripe.Event) -> tuple[Any, bytes | None]:
        if not event.type.startswith(OBJECT_EVENT_PREFIXES):
            return event, None
        data_object = event.data.object
        metadata = data_object.get("metadata")
        if not metadata:
            return data_object, None
        return data_object, orjson.dumps(dict(metadata))

    def success_response(self) -> WebhookResponse:
        return WebhookResponse(body=WebhookResponse.Body(received=True))

    def error_response(self, exc: Exception) -> WebhookErrorResponse:
        return WebhookErrorResponse(
            body=WebhookErrorResponse.Body(received=False, error=error_message(exc))
        )

    def valid_event_types(self) -> list[str]:
        return list(self._event_types)

    def provider_info(self) -> WebhookProviderInfo:
        return WebhookProviderInfo(
            name="Stripe",
            website="https://stripe.com",
            docs_url="https://stripe.com/docs/webhooks",
        )
