"""Core app configuration, database and security primitives."""

from refugio.core.config import get_settings, settings
from refugio.core.database import get_db

__all__ = ["get_settings", "settings", "get_db"]
