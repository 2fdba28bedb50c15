"""SQLAlchemy ORM model mirroring user profiles from the auth backend."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from campuschat.database import Base
from .base import generate_id


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    department = Column(String(150), nullable=True, index=True)
    stage = Column(String(32), nullable=True)
    profile_picture = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


__all__ = ["User"]
