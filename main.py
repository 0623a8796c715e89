"""Serve a typedapi application with uvicorn.

The routes come from ``APP_ROUTES``, an import path of the form
``module:function`` naming a callback that receives the ``TypedRouter``::

    APP_ROUTES=inventory.routes:register python main.py

Without it the application only exposes the generated OpenAPI document
(and the Stripe webhook when a secret is configured). ``PORT`` overrides
``API_PORT`` when set.
"""

import importlib
import os
from collections.abc import Callable
from typing import Any

import uvicorn
from fastapi import FastAPI
from loguru import logger

from typedapi.api.main import create_app
from typedapi.api.router import TypedRouter
from typedapi.core.config import Settings, get_settings
from typedapi.core.exceptions import ConfigurationError
from typedapi.core.logging import setup_logging

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def load_routes(target: str) -> Callable[[TypedRouter], None]:
    """Import the route registration callback named by ``module:function``.

    Raises:
        ConfigurationError: If the target is malformed, missing or not callable.
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        msg = f"APP_ROUTES must look like 'module:function', got {target!r}"
        raise ConfigurationError(msg, context={"app_routes": target})
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as exc:
        msg = f"cannot import routes module {module_name!r}"
        raise ConfigurationError(msg, context={"app_routes": target}) from exc
    configure = getattr(module, attribute, None)
    if not callable(configure):
        msg = f"{target!r} is not a callable route registration function"
        raise ConfigurationError(msg, context={"app_routes": target})
    return configure


def build_app(settings: Settings | None = None) -> FastAPI:
    """Create the application for the configured routes."""
    if settings is None:
        settings = get_settings()
    configure = load_routes(settings.app_routes) if settings.app_routes else None
    return create_app(settings, configure=configure)


def uvicorn_log_config() -> dict[str, Any]:
    """Route uvicorn's stdlib loggers through loguru."""
    logger_config = {"handlers": ["default"], "level": "INFO", "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {"class": "typedapi.core.logging.InterceptHandler"},
        },
        "loggers": {name: dict(logger_config) for name in UVICORN_LOGGERS},
    }


def resolve_port(settings: Settings) -> int:
    """The listening port, from ``PORT`` or the settings.

    Raises:
        ConfigurationError: If ``PORT`` is not an integer.
    """
    raw = os.environ.get("PORT")
    if raw is None:
        return settings.api_port
    try:
        return int(raw)
    except ValueError as exc:
        msg = f"PORT must be an integer, got {raw!r}"
        raise ConfigurationError(msg, context={"port": raw}) from exc


def main() -> None:
    """Build the application and serve it."""
    settings = get_settings()
    setup_logging(settings)
    port = resolve_port(settings)

    # The app is built before serving so route errors surface at startup
    app = build_app(settings)
    for route in app.state.route_registry.routes():
        logger.debug("Serving {} {}", route.method, route.path)

    mode = "development mode with auto-reload" if settings.debug else "production mode"
    logger.info(
        "Starting Uvicorn on http://{}:{} ({})", settings.api_host, port, mode
    )
    if settings.debug:
        # Reload re-imports the factory in a worker process
        uvicorn.run(
            "main:build_app",
            factory=True,
            host=settings.api_host,
            port=port,
            reload=True,
            log_config=uvicorn_log_config(),
        )
    else:
        uvicorn.run(
            app,
            host=settings.api_host,
            port=port,
            reload=False,
            log_config=uvicorn_log_config(),
        )


if __name__ == "__main__":
    main()
