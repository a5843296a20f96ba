"""Repository module for database operations."""

from .base import BaseRepository
from .media import MediaRepository

__all__ = [
    "BaseRepository",
    "MediaRepository",
]
