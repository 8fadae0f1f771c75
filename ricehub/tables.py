"""
SQLAlchemy table definitions shared by the store and the feed query builder.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(32), nullable=False, unique=True)
    display_name = Column(String(64), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class RiceRow(Base):
    __tablename__ = "rices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(64), nullable=False, unique=True)
    slug = Column(String(96), nullable=False, unique=True)
    description = Column(Text, nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class RiceDotfilesRow(Base):
    __tablename__ = "rice_dotfiles"

    rice_id = Column(
        Uuid, ForeignKey("rices.id", ondelete="CASCADE"), primary_key=True
    )
    file_path = Column(String, nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class RicePreviewRow(Base):
    __tablename__ = "rice_previews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    rice_id = Column(
        Uuid, ForeignKey("rices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_path = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class RiceStarRow(Base):
    __tablename__ = "rice_stars"

    rice_id = Column(
        Uuid, ForeignKey("rices.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
