"""Typed webhook event dispatch.

Bind one handler per event type and register them with a provider::

    def payment_succeeded(
        ctx, payment: stripe.PaymentIntent, meta: OrderMeta | None
    ) -> None:
        ...

    handle = register_webhook(
        StripeProvider(),
        on_event("payment_intent.succeeded", payment_succeeded),
    )
    router.webhook("/webhooks/stripe", handle)

Handler signatures are checked when bound and event types when
registered, so mistakes surface at startup. The returned handle owns the
registration metadata used for OpenAPI synthesis.
"""

import inspect
import re
import types
import typing
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Union, get_args, get_origin, get_type_hints

import pydantic
from loguru import logger
from pydantic import TypeAdapter
from starlette import status
from starlette.requests import Request
from starlette.responses import Response

from typedapi.api.extraction import SectionExtractor
from typedapi.api.introspection import NONE_TYPE, TypeKind, describe_type
from typedapi.api.responses import write_response
from typedapi.api.router import call_handler, handler_name
from typedapi.api.validation import ValidationPipeline
from typedapi.core.exceptions import (
    ConfigurationError,
    ExtractionError,
    ServerFaultError,
    ValidationError,
)
from typedapi.webhooks.provider import WebhookEvent, WebhookProvider, error_message

type EventHandler = Callable[..., Any]

_NON_WORD = re.compile(r"\W+")


@dataclass(frozen=True)
class EventBinding:
    """An event type bound to a handler, as returned by ``on_event``."""

    event_type: str
    handler: EventHandler
    payload_type: Any
    user_metadata_type: Any


@dataclass(frozen=True)
class RegisteredEventHandler:
    """Per-handler metadata kept by a ``WebhookHandle``."""

    event_type: str
    handler: EventHandler
    handler_name: str
    payload_type: Any
    user_metadata_type: Any


def _declared_type(annotation: Any) -> Any:
    if annotation is None or annotation is NONE_TYPE:
        return None
    descriptor = describe_type(annotation)
    if descriptor.kind is TypeKind.OPTIONAL:
        return descriptor.inner.python_type
    return annotation


def payload_matches(value: Any, expected: Any) -> bool:
    """Whether a provider payload can be passed where ``expected`` is declared."""
    if value is None or expected is None or expected is Any:
        return True
    if isinstance(expected, typing.TypeAliasType):
        return payload_matches(value, expected.__value__)
    origin = get_origin(expected)
    if origin is Annotated:
        return payload_matches(value, get_args(expected)[0])
    if origin in (Union, types.UnionType):
        return any(payload_matches(value, arg) for arg in get_args(expected))
    target = origin or expected
    if not isinstance(target, type):
        return True
    return isinstance(value, target)


def on_event(event_type: str, handler: EventHandler) -> EventBinding:
    """Bind ``handler(ctx, payload, metadata)`` to ``event_type``.

    The payload and metadata types are read from the handler's annotations;
    an unannotated parameter accepts anything.

    Raises:
        ConfigurationError: If the handler does not take exactly three
            positional parameters.
    """
    name = handler_name(handler)
    params = [
        param
        for param in inspect.signature(handler).parameters.values()
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
    ]
    if len(params) != 3:  # noqa: PLR2004
        msg = (
            f"event handler {name} must accept (ctx, payload, metadata), "
            f"got {len(params)} parameters"
        )
        raise ConfigurationError(msg, context={"event_type": event_type})

    hints = get_type_hints(handler, include_extras=True)
    return EventBinding(
        event_type=event_type,
        handler=handler,
        payload_type=_declared_type(hints.get(params[1].name)),
        user_metadata_type=_declared_type(hints.get(params[2].name)),
    )


class WebhookHandle:
    """Request-processing callable for one provider and its event handlers.

    Mount it with ``TypedRouter.webhook``; the handle also carries the
    metadata the OpenAPI generator publishes.
    """

    def __init__(
        self,
        provider: WebhookProvider,
        handlers: Mapping[str, RegisteredEventHandler],
        *,
        strict_user_validation: bool = False,
        extractor: SectionExtractor | None = None,
        pipeline: ValidationPipeline | None = None,
    ) -> None:
        self.provider = provider
        self.strict_user_validation = strict_user_validation
        self.extractor = extractor or SectionExtractor()
        self.pipeline = pipeline or ValidationPipeline()
        self._handlers = dict(handlers)
        provider_name = provider.provider_info().name
        self.name = _NON_WORD.sub("_", provider_name).strip("_").lower() + "_webhook"

    def handled_events(self) -> list[str]:
        """Bound event types, sorted."""
        return sorted(self._handlers)

    def handlers_metadata(self) -> list[RegisteredEventHandler]:
        """Registered handlers, sorted by event type."""
        return [self._handlers[event] for event in sorted(self._handlers)]

    async def __call__(self, request: Request) -> Response:
        return await self.dispatch(request)

    async def dispatch(self, request: Request) -> Response:
        """Verify ``request``, route its event and answer with the provider's body.

        Returns:
            Response: 200 on success or for unhandled events, 400 for a
                malformed request, 401 when verification fails, otherwise the
                failing handler's status (500 by default).
        """
        provider = self.provider
        log = logger.bind(provider=provider.provider_info().name)

        try:
            parsed = await self.extractor.extract(
                request, provider.request_type, request
            )
            self.pipeline.validate(request, parsed)
        except (ExtractionError, ValidationError) as exc:
            log.warning("Rejected webhook request: {}", error_message(exc))
            return self._error(exc, status.HTTP_400_BAD_REQUEST)

        try:
            event = provider.parse_request(parsed)
        except Exception as exc:  # noqa: BLE001
            log.warning("Webhook verification failed: {}", error_message(exc))
            return self._error(exc, status.HTTP_401_UNAUTHORIZED)

        registered = self._handlers.get(event.type)
        if registered is None:
            log.info(
                "Unhandled webhook event type: {}", event.type, event_type=event.type
            )
            return write_response(provider.success_response(), status.HTTP_200_OK)

        try:
            await self.invoke(request, registered, event)
        except Exception as exc:  # noqa: BLE001
            status_code = getattr(exc, "status_code", None)
            if not isinstance(status_code, int):
                status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            if status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
                log.warning(
                    "Webhook handler for {} rejected the event: {}",
                    event.type,
                    error_message(exc),
                    event_type=event.type,
                )
                return self._error(exc, status_code)
            log.opt(exception=exc).error(
                "Webhook handler for {} failed", event.type, event_type=event.type
            )
            fault = (
                exc
                if isinstance(exc, ServerFaultError)
                else ServerFaultError(str(exc), cause=exc)
            )
            return self._error(fault, status_code)

        log.debug("Processed webhook event {}", event.type, event_type=event.type)
        return write_response(provider.success_response(), status.HTTP_200_OK)

    async def invoke(
        self, ctx: Any, registered: RegisteredEventHandler, event: WebhookEvent
    ) -> None:
        """Check the payload type, decode metadata and call the handler.

        Raises:
            ServerFaultError: If the payload does not match the declared type.
            ValidationError: If metadata is invalid and validation is strict.
        """
        payload = event.provider_object
        if not payload_matches(payload, registered.payload_type):
            declared = registered.payload_type
            expected = getattr(declared, "__name__", str(declared))
            msg = (
                f"provider payload type mismatch: have {type(payload).__name__}, "
                f"need {expected}"
            )
            raise ServerFaultError(msg, context={"event_type": event.type})

        metadata = self.decode_metadata(registered, event.user_meta_json)
        await call_handler(registered.handler, ctx, payload, metadata)

    def decode_metadata(
        self, registered: RegisteredEventHandler, raw: bytes | None
    ) -> Any:
        """Metadata in the handler's declared type, or ``None``."""
        if registered.user_metadata_type is None or not raw:
            return None
        try:
            return TypeAdapter(registered.user_metadata_type).validate_json(raw)
        except pydantic.ValidationError as exc:
            if self.strict_user_validation:
                reason = exc.errors(include_url=False)[0]["msg"]
                msg = f"invalid user metadata: {reason}"
                raise ValidationError(msg, cause=exc) from exc
            logger.debug(
                "Ignoring invalid user metadata for {}",
                registered.event_type,
                handler=registered.handler_name,
            )
            return None

    def _error(self, exc: Exception, status_code: int) -> Response:
        return write_response(self.provider.error_response(exc), status_code)


def register_webhook(
    provider: WebhookProvider,
    *bindings: EventBinding,
    strict_user_validation: bool = False,
    extractor: SectionExtractor | None = None,
    pipeline: ValidationPipeline | None = None,
) -> WebhookHandle:
    """Create the dispatch handle for ``provider`` and its event bindings.

    Args:
        provider: Provider verifying and answering the requests.
        bindings: Event bindings from ``on_event``.
        strict_user_validation: Answer 400 when user metadata cannot be
            decoded, instead of passing ``None`` to the handler.
        extractor: Section extractor for the provider's request type.
        pipeline: Validation pipeline for the provider's request type.

    Returns:
        WebhookHandle: The handle to mount on a router.

    Raises:
        ConfigurationError: If a binding names an event type the provider
            does not advertise.
    """
    info = provider.provider_info()
    valid = set(provider.valid_event_types())
    handlers: dict[str, RegisteredEventHandler] = {}
    for binding in bindings:
        if valid and binding.event_type not in valid:
            msg = (
                f"unknown event type '{binding.event_type}' for webhook provider "
                f"{type(provider).__name__}"
            )
            raise ConfigurationError(msg, context={"provider": info.name})
        if binding.event_type in handlers:
            logger.warning(
                "Replacing handler for webhook event {}",
                binding.event_type,
                provider=info.name,
            )
        handlers[binding.event_type] = RegisteredEventHandler(
            event_type=binding.event_type,
            handler=binding.handler,
            handler_name=handler_name(binding.handler),
            payload_type=binding.payload_type,
            user_metadata_type=binding.user_metadata_type,
        )

    handle = WebhookHandle(
        provider,
        handlers,
        strict_user_validation=strict_user_validation,
        extractor=extractor,
        pipeline=pipeline,
    )
    logger.info(
        "Registered {} webhook", info.name, events=handle.handled_events()
    )
    return handle
