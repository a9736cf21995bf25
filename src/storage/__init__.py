"""Storage layer - the shared PostgreSQL pool."""

from src.storage.database import Database

__all__ = ["Database"]
