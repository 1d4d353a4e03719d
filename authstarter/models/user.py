from enum import Enum
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, Enum as SAEnum, Uuid

from authstarter.core.security import now_utc
from authstarter.db.base import Base

class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"

class User(Base):
    __tablename__ = "users"
    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(320), unique=True, index=True, nullable=False)  # store lowercase
    password_hash = Column(String(255), nullable=False)
    role = Column(SAEnum(Role, name="user_role"), nullable=False, default=Role.USER)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)  # set once, never cleared
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)
