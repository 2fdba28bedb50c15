"""Utility mixins and column helpers shared across ORM models."""
from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

# Document attributes holding lists of ids are JSON arrays; JSONB on PostgreSQL.
JSONList = JSON().with_variant(JSONB, "postgresql")


def generate_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Reusable timestamp columns with timezone-aware defaults."""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = ["JSONList", "TimestampMixin", "generate_id"]
