"""SQLAlchemy models for streamnotes."""

from streamnotes.models.base import Base
from streamnotes.models.kv import KeyValueEntry

__all__ = ["Base", "KeyValueEntry"]
