from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid

from authstarter.db.base import Base

class LoginAttempt(Base):
    """Failed-login bookkeeping per (lowercased email, source address)."""
    __tablename__ = "login_attempts"

    email = Column(String(320), primary_key=True)
    ip_address = Column(String(64), primary_key=True)
    fail_count = Column(Integer, default=0, nullable=False)
    first_failed_at = Column(DateTime(timezone=True), nullable=False)
    last_failed_at = Column(DateTime(timezone=True), nullable=False)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
