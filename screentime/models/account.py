"""Credentials held by the identity service."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text

from ..db.session import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    display_name = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


__all__ = ["Account"]
