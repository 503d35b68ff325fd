import json
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from dapp_auth.core.errors import StoreUnavailableError
from dapp_auth.stores.challenges import MemoryChallengeStore, RedisChallengeStore
from tests.conftest import FakeClock

ADDRESS = "0xabc0000000000000000000000000000000000001"


class TestMemoryChallengeStore:
    """Test cases for the in-process challenge store"""

    def test_issue_and_consume(self, challenge_store: MemoryChallengeStore):
        issued = challenge_store.issue(ADDRESS)

        assert issued.wallet_address == ADDRESS
        assert (issued.expires_at - issued.issued_at).total_seconds() == 300
        assert challenge_store.consume(ADDRESS) == issued
        assert challenge_store.consume(ADDRESS) is None

    def test_address_is_case_insensitive(self, challenge_store: MemoryChallengeStore):
        issued = challenge_store.issue(ADDRESS.upper().replace("0X", "0x"))

        assert challenge_store.consume(ADDRESS) == issued

    def test_reissue_replaces(self, challenge_store: MemoryChallengeStore):
        first = challenge_store.issue(ADDRESS)
        second = challenge_store.issue(ADDRESS)

        assert first.nonce != second.nonce
        assert len(challenge_store) == 1
        assert challenge_store.consume(ADDRESS) == second

    def test_expired_challenge_is_absent(self, challenge_store: MemoryChallengeStore, clock: FakeClock):
        challenge_store.issue(ADDRESS)
        clock.advance(300)

        assert challenge_store.consume(ADDRESS) is None
        assert len(challenge_store) == 0

    def test_purge_expired(self, challenge_store: MemoryChallengeStore, clock: FakeClock):
        challenge_store.issue(ADDRESS)
        clock.advance(200)
        challenge_store.issue("0xabc0000000000000000000000000000000000002")
        clock.advance(150)

        assert challenge_store.purge_expired() == 1
        assert len(challenge_store) == 1

    def test_consume_is_exactly_once_across_threads(self, challenge_store: MemoryChallengeStore):
        challenge_store.issue(ADDRESS)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: challenge_store.consume(ADDRESS), range(32)))

        assert sum(result is not None for result in results) == 1


class TestRedisChallengeStore:
    """Test cases for the Redis challenge store against a mocked client"""

    def _store(self, client, clock=None) -> RedisChallengeStore:
        return RedisChallengeStore(client, ttl_seconds=300, clock=clock or FakeClock())

    def test_issue_sets_key_with_ttl(self):
        client = MagicMock()
        issued = self._store(client).issue(ADDRESS)

        client.set.assert_called_once()
        args, kwargs = client.set.call_args
        assert args[0] == f"auth_challenge:{ADDRESS}"
        assert json.loads(args[1])["nonce"] == issued.nonce
        assert kwargs == {"ex": 300}

    def test_consume_round_trips_through_getdel(self):
        client = MagicMock()
        clock = FakeClock()
        store = self._store(client, clock)
        issued = store.issue(ADDRESS)
        client.getdel.return_value = client.set.call_args[0][1]

        assert store.consume(ADDRESS) == issued
        client.getdel.assert_called_once_with(f"auth_challenge:{ADDRESS}")

    def test_consume_missing(self):
        client = MagicMock()
        client.getdel.return_value = None

        assert self._store(client).consume(ADDRESS) is None

    def test_consume_expired_payload(self):
        client = MagicMock()
        clock = FakeClock()
        store = self._store(client, clock)
        store.issue(ADDRESS)
        client.getdel.return_value = client.set.call_args[0][1]
        clock.advance(301)

        assert store.consume(ADDRESS) is None

    def test_consume_unreadable_payload(self):
        client = MagicMock()
        client.getdel.return_value = "{not json"

        assert self._store(client).consume(ADDRESS) is None

    def test_connection_errors_become_store_unavailable(self):
        client = MagicMock()
        client.set.side_effect = RedisConnectionError("down")
        client.getdel.side_effect = RedisConnectionError("down")
        store = self._store(client)

        with pytest.raises(StoreUnavailableError):
            store.issue(ADDRESS)
        with pytest.raises(StoreUnavailableError):
            store.consume(ADDRESS)

    def test_health(self):
        client = MagicMock()
        client.ping.return_value = True
        assert self._store(client).health() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert self._store(client).health() is False
