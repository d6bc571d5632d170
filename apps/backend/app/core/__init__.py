"""Core module package."""

from app.core.config import Settings, get_settings
from app.core.logging import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
]
