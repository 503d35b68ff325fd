import os
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi.testclient import TestClient

# settings are read lazily, but keep the environment complete for anything that calls get_settings()
os.environ.setdefault("JWT_SECRET", "test-secret-0123456789abcdef0123456789abcdef")
os.environ.setdefault("POSTGRES_URL", "sqlite://")

from main import create_app  # noqa: E402
from dapp_auth.core.config import Settings  # noqa: E402
from dapp_auth.core.jwt_utils import TokenService  # noqa: E402
from dapp_auth.core.passwords import PasswordHasher  # noqa: E402
from dapp_auth.db.manager import Backends  # noqa: E402
from dapp_auth.db.session import create_db_engine  # noqa: E402
from dapp_auth.services.activity import ActivityService  # noqa: E402
from dapp_auth.services.auth import AuthService  # noqa: E402
from dapp_auth.stores.activity import SqlActivityStore  # noqa: E402
from dapp_auth.stores.challenges import MemoryChallengeStore  # noqa: E402
from dapp_auth.stores.identity import SqlIdentityStore  # noqa: E402

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
STRONG_PASSWORD = "Aa1!aaaa"


class FakeClock:
    """Controllable UTC clock for TTL tests"""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def sign_message(account, message: str) -> str:
    """personal_sign a message the way a browser wallet does"""
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        JWT_SECRET=TEST_SECRET,
        POSTGRES_URL="sqlite://",
        NODE_ENV="test",
        _env_file=None,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backends() -> Generator[Backends, None, None]:
    """Backends over a fresh in-memory SQLite database"""
    backends = Backends(create_db_engine("sqlite://"))
    backends.init(retries=1)
    yield backends
    backends.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    # cheap argon2 parameters keep the suite fast
    return PasswordHasher(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture
def identity_store(backends: Backends) -> SqlIdentityStore:
    return SqlIdentityStore(backends.session_factory)


@pytest.fixture
def activity_store(backends: Backends) -> SqlActivityStore:
    return SqlActivityStore(backends.session_factory)


@pytest.fixture
def challenge_store(clock: FakeClock) -> MemoryChallengeStore:
    return MemoryChallengeStore(ttl_seconds=300, clock=clock)


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_SECRET, ttl_seconds=24 * 3600)


@pytest.fixture
def auth_service(identity_store, challenge_store, token_service, activity_store, hasher) -> AuthService:
    return AuthService(
        identities=identity_store,
        challenges=challenge_store,
        tokens=token_service,
        activity=ActivityService(activity_store),
        hasher=hasher,
    )


@pytest.fixture
def client(settings, backends, auth_service) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application"""
    app = create_app(settings, backends, auth_service)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def wallet():
    return Account.create()


@pytest.fixture
def other_wallet():
    return Account.create()
