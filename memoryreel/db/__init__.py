"""Database module for MemoryReel."""

from .connection import (
    build_engine,
    build_session_factory,
    check_db,
    close_db,
    get_session_context,
    init_db,
)
from .models import Base, MediaRow

__all__ = [
    "build_engine",
    "build_session_factory",
    "check_db",
    "close_db",
    "get_session_context",
    "init_db",
    "Base",
    "MediaRow",
]
