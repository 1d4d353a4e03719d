from uuid import uuid4
from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid

from authstarter.core.security import now_utc
from authstarter.db.base import Base

class PasswordReset(Base):
    __tablename__ = "password_resets"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    token_hash = Column(String(128), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
