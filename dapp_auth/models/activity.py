from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, Integer, String

from dapp_auth.db.base import Base


class UserActivity(Base):
    """Append-only per-user event log.

    Rows are never updated; `id` breaks timestamp ties in insertion order.
    """

    __tablename__ = "user_activity"
    __table_args__ = (Index("ix_user_activity_user_ts", "user_id", "timestamp"),)

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False)
    event_kind = Column(String(64), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
