"""Typed route registration on top of a FastAPI ``APIRouter``.

A handler takes the handler context (the Starlette request) and a
request model, and returns a response model or ``None``::

    router = TypedRouter(prefix="/api")

    @router.get("/users/{user_id}", tags=["users"])
    async def get_user(ctx: Request, req: GetUserRequest) -> GetUserResponse:
        ...

Each registration appends a ``RouteInfo`` to the shared ``RouteRegistry``
(used for OpenAPI synthesis) and mounts a Starlette endpoint that runs
extraction, validation, the handler and response writing in turn.
"""

import inspect
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, get_type_hints

from fastapi import APIRouter
from loguru import logger
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response

from typedapi.api.constants import (
    BODY_SECTION,
    READ_ONLY_METHODS,
    VALIDATION_SERVER_ERROR_MESSAGE,
)
from typedapi.api.extraction import SectionExtractor
from typedapi.api.introspection import (
    NONE_TYPE,
    TypeKind,
    describe_type,
    request_sections,
)
from typedapi.api.openapi.generator import (
    RouteFilter,
    default_route_filter,
    generate_openapi,
)
from typedapi.api.openapi.models import OpenAPIDocument
from typedapi.api.options import RouteOptions, SecurityRequirement
from typedapi.api.registry import RouteInfo, RouteRegistry
from typedapi.api.responses import write_response
from typedapi.api.utils.responses import ORJSONResponse
from typedapi.api.validation import ValidationPipeline
from typedapi.core.exceptions import ConfigurationError, ServerFaultError, TypedAPIError

type Endpoint = Callable[[Request], Awaitable[Response]]
type Handler = Callable[..., Any]


def join_path(prefix: str, path: str) -> str:
    """Join a router prefix and a route path with single slashes."""
    parts = [part.strip("/") for part in (prefix, path) if part.strip("/")]
    return "/" + "/".join(parts)


def handler_name(handler: Callable[..., Any]) -> str:
    """Name used as the operation id of a handler."""
    return getattr(handler, "__name__", type(handler).__name__)


def handler_types(handler: Handler) -> tuple[type[BaseModel], type | None]:
    """Request and response types declared by a handler's annotations.

    Args:
        handler: A ``handler(ctx, request)`` callable.

    Returns:
        tuple[type[BaseModel], type | None]: The request model, and the
            response type or ``None`` for handlers that return nothing.

    Raises:
        ConfigurationError: If the handler does not have that shape.
    """
    name = handler_name(handler)
    params = [
        param
        for param in inspect.signature(handler).parameters.values()
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
    ]
    if len(params) != 2:  # noqa: PLR2004
        msg = f"handler {name} must accept (ctx, request), got {len(params)} parameters"
        raise ConfigurationError(msg)

    hints = get_type_hints(handler)
    request_type = hints.get(params[1].name)
    if not (isinstance(request_type, type) and issubclass(request_type, BaseModel)):
        msg = (
            f"handler {name}: request parameter must be annotated "
            "with a pydantic model"
        )
        raise ConfigurationError(msg)

    response_type = hints.get("return")
    if response_type is None or response_type is NONE_TYPE:
        return request_type, None
    descriptor = describe_type(response_type)
    if descriptor.kind is TypeKind.OPTIONAL:
        return request_type, descriptor.inner.python_type
    return request_type, response_type


def validate_body_usage(method: str, path: str, request_type: type[BaseModel]) -> None:
    """Reject a Body section on methods that cannot carry one.

    Raises:
        ConfigurationError: For GET, HEAD and OPTIONS requests with a body.
    """
    if method in READ_ONLY_METHODS and BODY_SECTION in request_sections(request_type):
        msg = (
            f"{method} {path}: request type {request_type.__name__} declares a "
            f"Body section, which {method} requests cannot carry"
        )
        raise ConfigurationError(msg)


async def call_handler(handler: Handler, ctx: Any, *args: Any) -> Any:
    """Invoke a sync or async handler; sync handlers run in the threadpool."""
    if inspect.iscoroutinefunction(handler):
        return await handler(ctx, *args)
    result = await run_in_threadpool(handler, ctx, *args)
    if inspect.isawaitable(result):
        return await result
    return result


class TypedRouter:
    """Registers typed handlers on an ``APIRouter`` and a ``RouteRegistry``.

    Args:
        router: Router receiving the endpoints; a new one by default.
        registry: Registry receiving the route metadata; a new one by default.
        prefix: Path prefix joined to every registered path.
        extractor: Section extractor shared by the endpoints.
        pipeline: Validation pipeline shared by the endpoints.
    """

    def __init__(
        self,
        router: APIRouter | None = None,
        registry: RouteRegistry | None = None,
        *,
        prefix: str = "",
        extractor: SectionExtractor | None = None,
        pipeline: ValidationPipeline | None = None,
    ) -> None:
        self.router = router if router is not None else APIRouter()
        self.registry = registry if registry is not None else RouteRegistry()
        self.prefix = prefix
        self.extractor = extractor or SectionExtractor()
        self.pipeline = pipeline or ValidationPipeline()

    def register(
        self,
        method: str,
        path: str,
        handler: Handler,
        *,
        tags: Iterable[str] = (),
        security: Iterable[SecurityRequirement] = (),
    ) -> tuple[Endpoint, RouteInfo]:
        """Register ``handler`` for ``method`` and ``path``.

        Returns:
            tuple[Endpoint, RouteInfo]: The mounted endpoint and its metadata.

        Raises:
            ConfigurationError: If the handler or request type is malformed.
        """
        method = method.upper()
        full_path = join_path(self.prefix, path)
        request_type, response_type = handler_types(handler)
        validate_body_usage(method, full_path, request_type)

        info = RouteInfo(
            method=method,
            path=full_path,
            handler=handler,
            handler_name=handler_name(handler),
            request_type=request_type,
            response_type=response_type,
            options=RouteOptions(tags=tuple(tags), security=tuple(security)),
        )
        self.registry.register(info)

        endpoint = self.build_endpoint(handler, request_type)
        self.router.add_route(
            full_path,
            endpoint,
            methods=[method],
            name=info.handler_name,
            include_in_schema=False,
        )
        logger.debug(
            "Registered {} {}",
            method,
            full_path,
            handler=info.handler_name,
        )
        return endpoint, info

    def build_endpoint(
        self, handler: Handler, request_type: type[BaseModel]
    ) -> Endpoint:
        """Request-processing function for one handler."""
        name = handler_name(handler)

        async def endpoint(request: Request) -> Response:
            value = await self.extractor.extract(request, request_type, request)
            try:
                self.pipeline.validate(request, value)
            except TypedAPIError:
                raise
            except Exception as exc:
                logger.opt(exception=exc).error(
                    "Validation of {} failed with a server error", request_type.__name__
                )
                raise ServerFaultError(
                    str(exc), public_message=VALIDATION_SERVER_ERROR_MESSAGE, cause=exc
                ) from exc

            try:
                result = await call_handler(handler, request, value)
            except (TypedAPIError, HTTPException):
                raise
            except Exception as exc:
                msg = f"handler {name} failed: {exc}"
                raise ServerFaultError(
                    msg, cause=exc, context={"handler": name}
                ) from exc
            return write_response(result)

        endpoint.__name__ = name
        return endpoint

    def _decorator(
        self, method: str, path: str, **options: Any
    ) -> Callable[[Handler], Handler]:
        def decorate(handler: Handler) -> Handler:
            self.register(method, path, handler, **options)
            return handler

        return decorate

    def get(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        """Register the decorated handler for GET requests on ``path``."""
        return self._decorator("GET", path, **options)

    def post(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        """Register the decorated handler for POST requests on ``path``."""
        return self._decorator("POST", path, **options)

    def put(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        """Register the decorated handler for PUT requests on ``path``."""
        return self._decorator("PUT", path, **options)

    def patch(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        """Register the decorated handler for PATCH requests on ``path``."""
        return self._decorator("PATCH", path, **options)

    def delete(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        """Register the decorated handler for DELETE requests on ``path``."""
        return self._decorator("DELETE", path, **options)

    def webhook(
        self,
        path: str,
        handle: Any,
        *,
        method: str = "POST",
        tags: Iterable[str] = (),
    ) -> RouteInfo:
        """Mount a webhook handle returned by ``register_webhook``."""
        method = method.upper()
        full_path = join_path(self.prefix, path)
        provider = handle.provider
        info = RouteInfo(
            method=method,
            path=full_path,
            handler=handle.dispatch,
            handler_name=handle.name,
            request_type=provider.request_type,
            response_type=provider.success_response_type,
            options=RouteOptions(tags=tuple(tags)),
            webhook=handle,
        )
        self.registry.register(info)
        self.router.add_route(
            full_path,
            handle.dispatch,
            methods=[method],
            name=handle.name,
            include_in_schema=False,
        )
        logger.debug(
            "Registered webhook {} {}",
            method,
            full_path,
            provider=provider.provider_info().name,
        )
        return info

    def docs_route(
        self,
        path: str = "/openapi.json",
        *,
        title: str | None = None,
        version: str | None = None,
        route_filter: RouteFilter = default_route_filter,
    ) -> RouteInfo:
        """Serve the OpenAPI document generated from this router's registry.

        The document is rebuilt on every request so it always reflects the
        current registrations.
        """
        full_path = join_path(self.prefix, path)
        options: dict[str, Any] = {"route_filter": route_filter}
        if title is not None:
            options["title"] = title
        if version is not None:
            options["version"] = version

        async def openapi_document(request: Request) -> Response:
            document = generate_openapi(self.registry, **options)
            return ORJSONResponse(document.to_dict())

        info = RouteInfo(
            method="GET",
            path=full_path,
            handler=openapi_document,
            handler_name="openapi_document",
            request_type=None,
            response_type=OpenAPIDocument,
        )
        self.registry.register(info)
        self.router.add_route(
            full_path,
            openapi_document,
            methods=["GET"],
            name="openapi_document",
            include_in_schema=False,
        )
        return info
