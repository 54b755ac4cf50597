"""
Cached, retried remote reads.

Every RPC read goes through :meth:`ResilientFetcher.fetch`. A read is first
looked up in the request cache; on a miss the operation is attempted up to
``RetryConfig.max_attempts`` times with linear backoff. Only successes are
cached. Concurrent callers asking for the same key while a read is in
flight await the same task instead of issuing a second request.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

from services.cache_store import CacheStore
from utils.logger import fetcher_logger as logger
from utils.retry import RetryConfig, run_with_retry

T = TypeVar("T")


def make_cache_key(request_key: Any) -> str:
    """Serialize a request identity into a stable cache key."""
    if isinstance(request_key, str):
        return request_key
    return json.dumps(request_key, sort_keys=True, separators=(",", ":"), default=str)


class ResilientFetcher:
    """Single point of contact with the remote data source"""

    def __init__(
        self,
        cache: CacheStore,
        retry_config: Optional[RetryConfig] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.cache = cache
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._in_flight: dict[str, asyncio.Task] = {}
        self.network_calls = 0

    async def fetch(self, request_key: Any, operation: Callable[[], Awaitable[T]]) -> T:
        key = make_cache_key(request_key)

        entry = self.cache.get_entry(key)
        if entry is not None:
            logger.debug("Request cache hit", request_key=key)
            return entry.value

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, operation))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))
        else:
            logger.debug("Joining in-flight request", request_key=key)

        # Shield so one cancelled caller does not cancel the shared read.
        return await asyncio.shield(task)

    async def _load(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        async def attempt() -> T:
            self.network_calls += 1
            return await operation()

        value = await run_with_retry(
            attempt,
            self.retry_config,
            request_key=key,
            sleep=self._sleep,
        )
        self.cache.set(key, value)
        return value

    def clear(self) -> None:
        self.cache.clear()
