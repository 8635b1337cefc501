"""Database building blocks: declarative base, mixins, repository and sessions."""

from fanout_service.core.database.base import (
    NAMING_CONVENTION,
    Base,
    IntegerPKMixin,
    JSONType,
    TimestampedBase,
    TimestampMixin,
)
from fanout_service.core.database.repository import BaseRepository, SearchResult

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "IntegerPKMixin",
    "JSONType",
    "SearchResult",
    "TimestampMixin",
    "TimestampedBase",
]
