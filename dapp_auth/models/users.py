import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from dapp_auth.db.base import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Model for users table
    Example:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "email": "alice@example.com",
        "name": "Alice",
        "wallet_address": "0x90f79bf6eb2c4f870365e785982e1f101e93b906",
        "profile_complete": true,
        "created_at": "2024-01-01T12:00:00",
        "updated_at": "2024-01-01T12:00:00",
        "last_login_at": "2024-01-02T08:30:00"
    }
    At least one of email / wallet_address is set. Both are stored lowercase.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=True, unique=True, index=True)
    name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=True)
    wallet_address = Column(String(42), nullable=True, unique=True, index=True)
    profile_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
