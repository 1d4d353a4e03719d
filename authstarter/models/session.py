from uuid import uuid4
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Uuid

from authstarter.core.security import now_utc
from authstarter.db.base import Base

class UserSession(Base):
    """One row per login. The id is the `sid` claim that binds refresh tokens to it."""
    __tablename__ = "sessions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    # sha256 of the current refresh token; NULL once the session is invalidated
    refresh_token_hash = Column(String(128), nullable=True)
    valid = Column(Boolean, default=True, nullable=False)
    user_agent = Column(String(255), nullable=True)
    ip = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    __table_args__ = (Index("ix_sessions_valid_updated_at", "valid", "updated_at"),)
