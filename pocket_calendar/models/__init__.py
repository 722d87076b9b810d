"""
SQLAlchemy models for Pocket Calendar.

This module exports all database models for easy importing.
"""

from pocket_calendar.models.base import Base, TimestampMixin
from pocket_calendar.models.storage import StoredValue

__all__ = [
    "Base",
    "TimestampMixin",
    "StoredValue",
]
