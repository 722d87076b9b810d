"""
Key-value storage model.

Backs the on-device key-value store. Each row holds one opaque string
value under a unique key.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pocket_calendar.models.base import Base, TimestampMixin


class StoredValue(TimestampMixin, Base):
    """
    A single entry of the key-value store.

    Attributes:
        key: Unique key (e.g. "token", "userInfo")
        value: Opaque string value
    """

    __tablename__ = "stored_values"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        doc="Storage key"
    )

    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Stored value"
    )

    def __repr__(self) -> str:
        return f"<StoredValue(key={self.key!r})>"
