"""
Long-lived storage handles.

`Backends` owns the SQL engine, the optional Redis client and the optional
MongoDB client. It is built once at startup, passed explicitly to the stores,
and closed on shutdown.
"""

import logging
import time
from typing import Dict, Optional

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from redis import ConnectionPool, Redis
from sqlalchemy import text
from sqlalchemy.engine import Engine

from dapp_auth.core.config import Settings
from dapp_auth.core.errors import StoreUnavailableError
from dapp_auth.db.base import Base
from dapp_auth.db.session import create_db_engine, make_session_factory

# Register tables on Base.metadata before create_all()
from dapp_auth.models import activity as _activity_models  # noqa: F401
from dapp_auth.models import users as _user_models  # noqa: F401

logger = logging.getLogger(__name__)

ACTIVITY_COLLECTION = "user_activity"


class Backends:
    def __init__(
        self,
        engine: Engine,
        redis_client: Optional[Redis] = None,
        mongo_client: Optional[MongoClient] = None,
        mongo_database: str = "dapp",
    ) -> None:
        self.engine = engine
        self.session_factory = make_session_factory(engine)
        self.redis = redis_client
        self.mongo = mongo_client
        self.mongo_database = mongo_database
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "Backends":
        """Build handles without connecting; `init()` performs the first round trip."""
        engine = create_db_engine(settings.POSTGRES_URL)

        redis_client = None
        if settings.REDIS_URL:
            pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=2,
                socket_timeout=5,
                decode_responses=True,
            )
            redis_client = Redis(connection_pool=pool)

        mongo_client = None
        if settings.MONGODB_URL:
            mongo_client = MongoClient(
                settings.MONGODB_URL,
                serverSelectionTimeoutMS=5000,
                connect=False,
            )

        return cls(engine, redis_client, mongo_client, settings.MONGODB_DATABASE)

    @property
    def initialized(self) -> bool:
        return self._initialized

    def activity_collection(self) -> Collection:
        if self.mongo is None:
            raise RuntimeError("MongoDB is not configured")
        return self.mongo[self.mongo_database][ACTIVITY_COLLECTION]

    def configured(self) -> Dict[str, bool]:
        return {
            "postgres": True,
            "mongodb": self.mongo is not None,
            "redis": self.redis is not None,
        }

    def init(self, retries: int = 3, backoff_seconds: float = 1.0) -> None:
        """
        Verify every configured backend answers, then create SQL tables and
        Mongo indexes. Idempotent.

        Raises:
            StoreUnavailableError: a configured backend is still down after `retries` attempts
        """
        if self._initialized:
            return

        configured = self.configured()
        attempts = max(retries, 1)
        for attempt in range(1, attempts + 1):
            health = self.health()
            down = [name for name, wanted in configured.items() if wanted and not health[name]]
            if not down:
                break
            logger.warning("Backends unreachable (attempt %d/%d): %s", attempt, attempts, ", ".join(down))
            if attempt == attempts:
                raise StoreUnavailableError(f"Backends unreachable: {', '.join(down)}")
            time.sleep(backoff_seconds * attempt)

        Base.metadata.create_all(self.engine)
        if self.mongo is not None:
            self.activity_collection().create_index([("user_id", ASCENDING), ("timestamp", ASCENDING)])
        self._initialized = True
        logger.info("Backends ready: %s", configured)

    def health(self) -> Dict[str, bool]:
        return {
            "postgres": self._sql_alive(),
            "mongodb": self._mongo_alive(),
            "redis": self._redis_alive(),
        }

    def _sql_alive(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.debug("SQL health check failed: %s", e)
            return False

    def _redis_alive(self) -> bool:
        if self.redis is None:
            return False
        try:
            return bool(self.redis.ping())
        except Exception as e:
            logger.debug("Redis health check failed: %s", e)
            return False

    def _mongo_alive(self) -> bool:
        if self.mongo is None:
            return False
        try:
            self.mongo.admin.command("ping")
            return True
        except Exception as e:
            logger.debug("MongoDB health check failed: %s", e)
            return False

    def close(self) -> None:
        if self.redis is not None:
            self.redis.close()
        if self.mongo is not None:
            self.mongo.close()
        self.engine.dispose()
        self._initialized = False
        logger.info("Backends closed")
