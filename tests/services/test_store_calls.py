import asyncio

import pytest

from dapp_auth.core.errors import ConflictError, StoreUnavailableError
from dapp_auth.services import store_calls
from dapp_auth.services.store_calls import RETRY_DELAY_RANGE, call_store


class FlakyCall:
    """Raises StoreUnavailableError for the first `failures` calls."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or StoreUnavailableError("down")
        self.calls = 0

    def __call__(self, value: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


@pytest.fixture
def delays(monkeypatch):
    recorded = []

    def uniform(low, high):
        recorded.append((low, high))
        return 0.0

    monkeypatch.setattr(store_calls.random, "uniform", uniform)
    return recorded


class TestCallStore:
    """Test cases for the store call retry wrapper"""

    def test_success_first_time(self, delays):
        call = FlakyCall(failures=0)

        assert asyncio.run(call_store(call, "ok")) == "ok"
        assert call.calls == 1
        assert delays == []

    def test_retries_once_then_succeeds(self, delays):
        call = FlakyCall(failures=1)

        assert asyncio.run(call_store(call, "ok")) == "ok"
        assert call.calls == 2
        assert delays == [RETRY_DELAY_RANGE]
        assert RETRY_DELAY_RANGE == (0.05, 0.2)

    def test_gives_up_after_one_retry(self, delays):
        call = FlakyCall(failures=2)

        with pytest.raises(StoreUnavailableError):
            asyncio.run(call_store(call, "ok"))
        assert call.calls == 2

    def test_other_errors_are_not_retried(self, delays):
        call = FlakyCall(failures=1, error=ConflictError())

        with pytest.raises(ConflictError):
            asyncio.run(call_store(call, "ok"))
        assert call.calls == 1
        assert delays == []

    def test_passes_keyword_arguments(self, delays):
        async def scenario():
            return await call_store(lambda a, b=0: a + b, 1, b=2)

        assert asyncio.run(scenario()) == 3
