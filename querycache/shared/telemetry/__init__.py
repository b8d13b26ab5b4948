"""Telemetry: logging setup."""

from querycache.shared.telemetry.logging import setup_logging

__all__ = ["setup_logging"]
