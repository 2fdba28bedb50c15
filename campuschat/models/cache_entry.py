"""Key/value storage backing the local cache."""
from __future__ import annotations

from sqlalchemy import Column, String, Text

from campuschat.database import Base


class KeyValueEntry(Base):
    __tablename__ = "kv_store"

    key = Column(String(512), primary_key=True)
    # Raw string payload, same contract as device key/value storage.
    value = Column(Text, nullable=False)


__all__ = ["KeyValueEntry"]
