from __future__ import annotations

from sqlalchemy import Column, DateTime, String

from ..db.session import Base


class RevokedToken(Base):
    """Token ids invalidated by sign-out."""

    __tablename__ = "revoked_tokens"

    jti = Column(String(32), primary_key=True)
    user_id = Column(String(32), nullable=False, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)


__all__ = ["RevokedToken"]
