"""
Challenge store: short-lived, single-use nonces keyed by wallet address.

issue()   replaces any previous challenge for the address.
consume() atomically removes and returns the challenge; expired challenges
          are removed too but reported as absent.

Two implementations:
- RedisChallengeStore: SET ... EX for replace-with-TTL, GETDEL for the atomic take
- MemoryChallengeStore: process-local dict under a lock, used when Redis is not
  configured (single-process deployments and tests)
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Dict, Optional, Protocol

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from dapp_auth.core.errors import StoreUnavailableError
from dapp_auth.core.wallet_auth import build_challenge_message, generate_nonce
from dapp_auth.models.records import Challenge

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_challenge(address: str, ttl_seconds: int, now: datetime) -> Challenge:
    nonce = generate_nonce()
    return Challenge(
        wallet_address=address,
        nonce=nonce,
        message=build_challenge_message(address, nonce, now),
        issued_at=now,
        expires_at=now + timedelta(seconds=ttl_seconds),
    )


class ChallengeStore(Protocol):
    def issue(self, address: str) -> Challenge: ...

    def consume(self, address: str) -> Optional[Challenge]: ...

    def health(self) -> bool: ...

    def close(self) -> None: ...


class MemoryChallengeStore:
    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock or _utc_now
        self._challenges: Dict[str, Challenge] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._challenges)

    def issue(self, address: str) -> Challenge:
        address = address.lower()
        now = self._clock()
        challenge = new_challenge(address, self._ttl_seconds, now)
        with self._lock:
            self._purge_locked(now)
            self._challenges[address] = challenge
        return challenge

    def consume(self, address: str) -> Optional[Challenge]:
        now = self._clock()
        with self._lock:
            challenge = self._challenges.pop(address.lower(), None)
        if challenge is None or challenge.is_expired(now):
            return None
        return challenge

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: datetime) -> int:
        expired = [addr for addr, challenge in self._challenges.items() if challenge.is_expired(now)]
        for addr in expired:
            del self._challenges[addr]
        return len(expired)

    def health(self) -> bool:
        return True

    def close(self) -> None:
        with self._lock:
            self._challenges.clear()


class RedisChallengeStore:
    KEY_PREFIX = "auth_challenge:"

    def __init__(
        self,
        client: Redis,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._clock = clock or _utc_now

    def _key(self, address: str) -> str:
        return f"{self.KEY_PREFIX}{address.lower()}"

    def issue(self, address: str) -> Challenge:
        address = address.lower()
        challenge = new_challenge(address, self._ttl_seconds, self._clock())
        payload = json.dumps(
            {
                "wallet_address": challenge.wallet_address,
                "nonce": challenge.nonce,
                "message": challenge.message,
                "issued_at": challenge.issued_at.isoformat(),
                "expires_at": challenge.expires_at.isoformat(),
            }
        )
        try:
            # a plain SET replaces the previous challenge and its TTL in one step
            self._client.set(self._key(address), payload, ex=self._ttl_seconds)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Challenge store write failed: %s", e)
            raise StoreUnavailableError("Challenge store unavailable")
        return challenge

    def consume(self, address: str) -> Optional[Challenge]:
        try:
            raw = self._client.getdel(self._key(address))
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Challenge store read failed: %s", e)
            raise StoreUnavailableError("Challenge store unavailable")
        if not raw:
            return None

        try:
            data = json.loads(raw)
            challenge = Challenge(
                wallet_address=data["wallet_address"],
                nonce=data["nonce"],
                message=data["message"],
                issued_at=datetime.fromisoformat(data["issued_at"]),
                expires_at=datetime.fromisoformat(data["expires_at"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable challenge for %s", address)
            return None

        if challenge.is_expired(self._clock()):
            return None
        return challenge

    def health(self) -> bool:
        try:
            return bool(self._client.ping())
        except Exception:
            return False

    def close(self) -> None:
        # the client is owned by Backends
        pass
