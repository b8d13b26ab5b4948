"""FastAPI dependencies for routes that use the shared QueryCache."""

from typing import Annotated

from fastapi import Depends, Request

from querycache.application.services.query_cache import QueryCache


def get_query_cache(request: Request) -> QueryCache | None:
    """Return the QueryCache started by the lifespan, or None before startup."""
    return getattr(request.app.state, "query_cache", None)


QueryCacheDep = Annotated[QueryCache | None, Depends(get_query_cache)]
