"""
Ambitionly Core - Database Models
=================================

The local durable store is a flat key -> string table. Typed access
lives in ambitionly.core.storage.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ambitionly.core.database import Base


class KeyValueEntry(Base):
    """A single persisted key/value pair."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry {self.key}>"
