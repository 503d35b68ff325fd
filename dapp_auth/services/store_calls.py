import asyncio
import logging
import random
from typing import Any, Callable, TypeVar

from starlette.concurrency import run_in_threadpool

from dapp_auth.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_DELAY_RANGE = (0.05, 0.2)  # seconds


async def call_store(func: Callable[..., T], *args: Any, retries: int = 1, **kwargs: Any) -> T:
    """
    Run a blocking store call in the worker pool.

    A StoreUnavailableError is retried `retries` times after a jittered sleep,
    then surfaced to the caller.
    """
    attempt = 0
    while True:
        try:
            return await run_in_threadpool(func, *args, **kwargs)
        except StoreUnavailableError:
            if attempt >= retries:
                raise
            attempt += 1
            delay = random.uniform(*RETRY_DELAY_RANGE)
            logger.warning("%s unavailable, retrying in %.0f ms", getattr(func, "__qualname__", func), delay * 1000)
            await asyncio.sleep(delay)
