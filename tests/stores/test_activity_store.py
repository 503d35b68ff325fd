from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pymongo import ASCENDING
from pymongo.errors import ServerSelectionTimeoutError

from dapp_auth.core.errors import StoreUnavailableError
from dapp_auth.models.records import ActivityRecord, ActivityStat
from dapp_auth.stores.activity import MongoActivityStore, SqlActivityStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _record(user_id: str, kind: str, seconds: int = 0) -> ActivityRecord:
    return ActivityRecord(user_id=user_id, event_kind=kind, timestamp=T0 + timedelta(seconds=seconds), details={})


class TestSqlActivityStore:
    """Test cases for the SQL activity store"""

    def test_append_and_list_in_order(self, activity_store: SqlActivityStore):
        activity_store.append(_record("u1", "register_email", 0))
        activity_store.append(_record("u1", "login_email", 1))
        activity_store.append(_record("u2", "register_wallet", 0))

        records = activity_store.list_for_user("u1")

        assert [r.event_kind for r in records] == ["register_email", "login_email"]
        assert records[0].timestamp == T0

    def test_equal_timestamps_keep_insertion_order(self, activity_store: SqlActivityStore):
        for kind in ["a", "b", "c"]:
            activity_store.append(_record("u1", kind))

        assert [r.event_kind for r in activity_store.list_for_user("u1")] == ["a", "b", "c"]

    def test_details_are_stored(self, activity_store: SqlActivityStore):
        activity_store.append(
            ActivityRecord(user_id="u1", event_kind="login_email", timestamp=T0, details={"ipAddress": "1.2.3.4"})
        )

        assert activity_store.list_for_user("u1")[0].details == {"ipAddress": "1.2.3.4"}

    def test_limit_and_offset(self, activity_store: SqlActivityStore):
        for i in range(5):
            activity_store.append(_record("u1", f"e{i}", i))

        assert [r.event_kind for r in activity_store.list_for_user("u1", limit=2, offset=2)] == ["e2", "e3"]

    def test_health(self, activity_store: SqlActivityStore):
        assert activity_store.health() is True


class TestMongoActivityStore:
    """Test cases for the MongoDB activity store against a mocked collection"""

    def test_append(self):
        collection = MagicMock()
        MongoActivityStore(collection).append(_record("u1", "login_wallet"))

        collection.insert_one.assert_called_once_with(
            {"user_id": "u1", "event_kind": "login_wallet", "timestamp": T0, "details": {}}
        )

    def test_list_for_user(self):
        collection = MagicMock()
        cursor = collection.find.return_value.sort.return_value.skip.return_value.limit.return_value
        cursor.__iter__.return_value = iter(
            [{"_id": 1, "user_id": "u1", "event_kind": "login_wallet", "timestamp": T0.replace(tzinfo=None)}]
        )

        records = MongoActivityStore(collection).list_for_user("u1", limit=10, offset=5)

        collection.find.assert_called_once_with({"user_id": "u1"})
        collection.find.return_value.sort.assert_called_once_with([("timestamp", ASCENDING), ("_id", ASCENDING)])
        collection.find.return_value.sort.return_value.skip.assert_called_once_with(5)
        assert records == [ActivityRecord(user_id="u1", event_kind="login_wallet", timestamp=T0, details={})]

    def test_errors_become_store_unavailable(self):
        collection = MagicMock()
        collection.insert_one.side_effect = ServerSelectionTimeoutError("down")
        collection.find.side_effect = ServerSelectionTimeoutError("down")
        store = MongoActivityStore(collection)

        with pytest.raises(StoreUnavailableError):
            store.append(_record("u1", "login_wallet"))
        with pytest.raises(StoreUnavailableError):
            store.list_for_user("u1")


class TestActivityStats:
    """Test cases for per-kind activity counts"""

    def test_sql_stats_group_by_kind(self, activity_store: SqlActivityStore):
        activity_store.append(_record("u1", "login_email", 0))
        activity_store.append(_record("u1", "login_email", 10))
        activity_store.append(_record("u1", "profile_view", 5))
        activity_store.append(_record("u2", "login_email", 5))

        stats = activity_store.stats_for_user("u1", since=T0)

        assert stats == [
            ActivityStat(event_kind="login_email", count=2, last_activity=T0 + timedelta(seconds=10)),
            ActivityStat(event_kind="profile_view", count=1, last_activity=T0 + timedelta(seconds=5)),
        ]

    def test_sql_stats_respect_window(self, activity_store: SqlActivityStore):
        activity_store.append(_record("u1", "login_email", 0))
        activity_store.append(_record("u1", "login_wallet", 60))

        stats = activity_store.stats_for_user("u1", since=T0 + timedelta(seconds=30))

        assert [(s.event_kind, s.count) for s in stats] == [("login_wallet", 1)]

    def test_sql_stats_empty(self, activity_store: SqlActivityStore):
        assert activity_store.stats_for_user("nobody", since=T0) == []

    def test_mongo_stats_aggregate(self):
        collection = MagicMock()
        collection.aggregate.return_value = [
            {"_id": "profile_view", "count": 1, "last_activity": T0.replace(tzinfo=None)},
            {"_id": "login_wallet", "count": 3, "last_activity": T0},
        ]

        stats = MongoActivityStore(collection).stats_for_user("u1", since=T0)

        pipeline = collection.aggregate.call_args[0][0]
        assert pipeline[0] == {"$match": {"user_id": "u1", "timestamp": {"$gte": T0}}}
        assert pipeline[1]["$group"]["_id"] == "$event_kind"
        assert [(s.event_kind, s.count) for s in stats] == [("login_wallet", 3), ("profile_view", 1)]
        assert stats[1].last_activity == T0

    def test_mongo_stats_errors_become_store_unavailable(self):
        collection = MagicMock()
        collection.aggregate.side_effect = ServerSelectionTimeoutError("down")

        with pytest.raises(StoreUnavailableError):
            MongoActivityStore(collection).stats_for_user("u1", since=T0)
