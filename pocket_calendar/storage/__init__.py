"""
Local key-value storage for Pocket Calendar.
"""

from pocket_calendar.storage.key_value import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SQLAlchemyKeyValueStore,
)

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
]
