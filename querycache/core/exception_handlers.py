"""Exception handlers for FastAPI apps that call the query cache from routes.

Register with register_exception_handlers(app). Maps QueryCacheException
error codes to HTTP statuses; anything else becomes a 500.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from querycache.core.config import get_settings
from querycache.domain.exceptions import QueryCacheException

logger = logging.getLogger(__name__)

_ERROR_CODE_STATUS: dict[str, int] = {
    "INVALID_ARGUMENT": 400,
    "CACHE_KEY_REQUIRED": 400,
    "QUERY_TIMEOUT": 504,
    "SHUTTING_DOWN": 503,
    "CONFIGURATION_ERROR": 500,
}


def _query_cache_exception_handler(
    request: Request, exc: QueryCacheException
) -> JSONResponse:
    """Return JSON from QueryCacheException.to_dict() with a mapped status code."""
    status = _ERROR_CODE_STATUS.get(exc.error_code, 400)
    return JSONResponse(status_code=status, content=exc.to_dict())


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include detail only when debug is True."""
    logger.exception("Unhandled exception: %s", exc)
    detail: Any = str(exc) if get_settings().debug else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the query cache exception handlers on app."""
    app.add_exception_handler(QueryCacheException, _query_cache_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
