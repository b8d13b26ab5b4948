"""Core: configuration, constants and application lifespan."""

from querycache.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
