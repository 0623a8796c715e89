"""FastAPI application factory.

``create_app`` wires the ambient stack (logging, exception handlers,
request context middleware) around a ``TypedRouter`` and serves the
OpenAPI document synthesized from its registry. Routes are added through
the ``configure`` callback::

    def routes(router: TypedRouter) -> None:
        router.get("/users/{user_id}")(get_user)

    app = create_app(configure=routes)

FastAPI's own schema generation is disabled; the document at
``settings.openapi_url`` comes from the route registry.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from typedapi.api.middleware.error_handler import register_exception_handlers
from typedapi.api.middleware.request_context import RequestContextMiddleware
from typedapi.api.registry import RouteRegistry
from typedapi.api.router import TypedRouter
from typedapi.api.utils.responses import ORJSONResponse
from typedapi.core.config import Settings, get_settings
from typedapi.core.logging import setup_logging
from typedapi.webhooks.registry import register_webhook
from typedapi.webhooks.stripe import StripeProvider

STRIPE_WEBHOOK_PATH = "/webhooks/stripe"


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Log application startup and shutdown.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.
    """
    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )
    yield
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    *,
    configure: Callable[[TypedRouter], None] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        configure: Callback registering the application's typed routes.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)
    application.add_middleware(RequestContextMiddleware)

    router = TypedRouter(registry=RouteRegistry())
    if configure is not None:
        configure(router)

    if settings.webhook_config.stripe_webhook_secret is not None:
        stripe_webhook = register_webhook(StripeProvider(settings=settings))
        router.webhook(STRIPE_WEBHOOK_PATH, stripe_webhook, tags=["webhooks"])

    if settings.openapi_url:
        router.docs_route(
            settings.openapi_url,
            title=settings.app_name,
            version=settings.app_version,
        )

    application.include_router(router.router)
    application.state.route_registry = router.registry

    logger.debug("Application created", routes=len(router.registry))
    return application


app = create_app()
