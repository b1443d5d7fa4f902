"""Database persistence layer."""

from .database import CACHE_DB_NAME, create_cache_engine, create_session_factory, init_db
from .models import Base, TranscriptCacheEntry, make_cache_key

__all__ = [
    "CACHE_DB_NAME",
    "create_cache_engine",
    "create_session_factory",
    "init_db",
    "Base",
    "TranscriptCacheEntry",
    "make_cache_key",
]
