"""FastAPI application entry point.

Wiring only: lifespan, exception handlers, routers. Settings are loaded
inside create_app() so tests can set env (and clear the get_settings
cache) before calling it.
"""

from fastapi import FastAPI

from querycache.api import api_router
from querycache.core.config import get_settings
from querycache.core.exception_handlers import register_exception_handlers
from querycache.core.lifespan import create_lifespan
from querycache.shared.telemetry.logging import setup_logging


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=create_lifespan,
    )
    register_exception_handlers(app)
    app.include_router(api_router)
    return app
