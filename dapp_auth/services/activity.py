"""
Activity recording around the activity store.

Writes for one user are serialized and stamped from a process-wide clock that
never goes backwards, so a user's records come back in the order they were
appended. A failed write is logged as LoggingError and swallowed: the
operation being recorded has already succeeded.
"""

import asyncio
import logging
import zlib
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from dapp_auth.core.errors import AuthServiceError, LoggingError
from dapp_auth.models.records import ActivityRecord, ActivityStat
from dapp_auth.services.store_calls import call_store
from dapp_auth.stores.activity import ActivityStore

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64
DEFAULT_STATS_DAYS = 30


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActivityService:
    def __init__(self, store: ActivityStore, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._store = store
        self._clock = clock or _utc_now
        self._last_timestamp: Optional[datetime] = None
        # users hash onto a fixed set of locks; same user, same lock
        self._locks = [asyncio.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        return self._locks[zlib.crc32(user_id.encode()) % LOCK_STRIPES]

    def _next_timestamp(self) -> datetime:
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    async def record(self, user_id: str, event_kind: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """Append an event; returns False (after logging) when the write failed."""
        async with self._lock_for(user_id):
            record = ActivityRecord(
                user_id=user_id,
                event_kind=event_kind,
                timestamp=self._next_timestamp(),
                details=dict(details or {}),
            )
            try:
                await call_store(self._store.append, record)
            except (AuthServiceError, OSError) as e:
                error = LoggingError(f"{event_kind} for user {user_id} not recorded: {e}")
                logger.warning("%s: %s", error.code, error.message)
                return False
        return True

    async def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[ActivityRecord]:
        return await call_store(self._store.list_for_user, user_id, limit, offset)

    async def stats_for_user(self, user_id: str, days: int = DEFAULT_STATS_DAYS) -> List[ActivityStat]:
        since = self._clock() - timedelta(days=days)
        return await call_store(self._store.stats_for_user, user_id, since)

    def health(self) -> bool:
        return self._store.health()

    def close(self) -> None:
        self._store.close()
