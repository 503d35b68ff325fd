"""
Activity store: append-only per-user event records.

Records are ordered per user by (timestamp, insertion order). Timestamps are
assigned by ActivityService, not by the store.
"""

import logging
from datetime import datetime, timezone
from typing import List, Protocol

from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dapp_auth.core.errors import StoreUnavailableError
from dapp_auth.models.activity import UserActivity
from dapp_auth.models.records import ActivityRecord, ActivityStat

logger = logging.getLogger(__name__)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _by_count(stats: List[ActivityStat]) -> List[ActivityStat]:
    return sorted(stats, key=lambda stat: (-stat.count, stat.event_kind))


class ActivityStore(Protocol):
    def append(self, record: ActivityRecord) -> None: ...

    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[ActivityRecord]: ...

    def stats_for_user(self, user_id: str, since: datetime) -> List[ActivityStat]: ...

    def health(self) -> bool: ...

    def close(self) -> None: ...


class SqlActivityStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def append(self, record: ActivityRecord) -> None:
        session = self._session_factory()
        try:
            session.add(
                UserActivity(
                    user_id=record.user_id,
                    event_kind=record.event_kind,
                    timestamp=record.timestamp,
                    details=dict(record.details),
                )
            )
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreUnavailableError(f"Activity store write failed: {e}")
        finally:
            session.close()

    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[ActivityRecord]:
        session = self._session_factory()
        try:
            stmt = (
                select(UserActivity)
                .where(UserActivity.user_id == user_id)
                .order_by(UserActivity.timestamp.asc(), UserActivity.id.asc())
                .offset(offset)
                .limit(limit)
            )
            rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Activity store read failed: {e}")
        finally:
            session.close()

        return [
            ActivityRecord(
                user_id=row.user_id,
                event_kind=row.event_kind,
                timestamp=_utc(row.timestamp),
                details=row.details or {},
            )
            for row in rows
        ]

    def stats_for_user(self, user_id: str, since: datetime) -> List[ActivityStat]:
        """Event counts per kind for records at or after `since`, most frequent first."""
        session = self._session_factory()
        try:
            stmt = (
                select(
                    UserActivity.event_kind,
                    func.count(UserActivity.id),
                    func.max(UserActivity.timestamp),
                )
                .where(UserActivity.user_id == user_id, UserActivity.timestamp >= since)
                .group_by(UserActivity.event_kind)
            )
            rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Activity store read failed: {e}")
        finally:
            session.close()

        return _by_count(
            [ActivityStat(event_kind=kind, count=count, last_activity=_utc(last)) for kind, count, last in rows]
        )

    def health(self) -> bool:
        try:
            self.list_for_user("health-check", limit=1)
            return True
        except StoreUnavailableError:
            return False

    def close(self) -> None:
        pass


class MongoActivityStore:
    """ActivityStore over a MongoDB collection, one document per event."""

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    def append(self, record: ActivityRecord) -> None:
        try:
            self._collection.insert_one(
                {
                    "user_id": record.user_id,
                    "event_kind": record.event_kind,
                    "timestamp": record.timestamp,
                    "details": dict(record.details),
                }
            )
        except PyMongoError as e:
            raise StoreUnavailableError(f"Activity store write failed: {e}")

    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[ActivityRecord]:
        try:
            # ObjectIds grow with insertion, so _id breaks timestamp ties
            cursor = (
                self._collection.find({"user_id": user_id})
                .sort([("timestamp", ASCENDING), ("_id", ASCENDING)])
                .skip(offset)
                .limit(limit)
            )
            docs = list(cursor)
        except PyMongoError as e:
            raise StoreUnavailableError(f"Activity store read failed: {e}")

        return [
            ActivityRecord(
                user_id=doc["user_id"],
                event_kind=doc["event_kind"],
                timestamp=_utc(doc["timestamp"]),
                details=doc.get("details") or {},
            )
            for doc in docs
        ]

    def stats_for_user(self, user_id: str, since: datetime) -> List[ActivityStat]:
        pipeline = [
            {"$match": {"user_id": user_id, "timestamp": {"$gte": since}}},
            {"$group": {"_id": "$event_kind", "count": {"$sum": 1}, "last_activity": {"$max": "$timestamp"}}},
        ]
        try:
            docs = list(self._collection.aggregate(pipeline))
        except PyMongoError as e:
            raise StoreUnavailableError(f"Activity store read failed: {e}")

        return _by_count(
            [
                ActivityStat(event_kind=doc["_id"], count=doc["count"], last_activity=_utc(doc["last_activity"]))
                for doc in docs
            ]
        )

    def health(self) -> bool:
        try:
            self._collection.database.client.admin.command("ping")
            return True
        except Exception:
            return False

    def close(self) -> None:
        pass
