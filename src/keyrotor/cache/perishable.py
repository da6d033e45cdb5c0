"""
Perishable retry cache.

A keyed cache of asynchronously produced values. Each cache key holds at most
one entry, which is in one of three states:

- pending: a producer task is in flight; concurrent callers share it
- fresh: a value with an absolute expiry, served until the expiry passes
- failed: an exception with a retry gate, re-raised until the gate opens

The producer decides how long a value lives by setting
``FetchContext.expires_at_ms``. A value that arrives already expired is
recorded as a failure with StaleKeyError. Consecutive failures back off
exponentially (doubling from ``retry_first_delay_ms`` up to
``retry_max_delay_ms``); a success resets the backoff. When the cache is
full, inserting a new key evicts the least-recently-used key along with its
TTL and backoff state.

Example usage:
    ```python
    cache = PerishableRetryCache(CacheConfig(max_entries=8))

    async def produce(context):
        record = await fetch(name)
        context.expires_at_ms = record.expires_at * 1000
        return record

    record = await cache.get(name, produce)
    ```
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from traceback import clear_frames
from types import TracebackType
from typing import Any, Awaitable, Callable, Hashable, Optional, Union

from ..config import CacheConfig
from ..logging import get_logger
from ..types import StaleKeyError

logger = get_logger(__name__)

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Milliseconds since the epoch."""
    return time.time() * 1000


@dataclass
class FetchContext:
    """Per-attempt handle passed to a producer and read back afterwards."""

    key: Hashable
    """The cache key being produced."""

    settled: bool = False
    """True once a producer marked this key's value as final."""

    expires_at_ms: Optional[float] = None
    """Absolute expiry of the produced value; set by the producer on success."""


Producer = Callable[[FetchContext], Awaitable[Any]]


@dataclass
class _Pending:
    task: "asyncio.Future[Any]"


@dataclass
class _Fresh:
    value: Any
    expires_at_ms: float


@dataclass
class _Failed:
    error: Exception
    traceback: Optional[TracebackType]
    next_retry_at_ms: float
    delay_ms: float


@dataclass
class _Entry:
    state: Union[_Pending, _Fresh, _Failed, None] = None
    settled: bool = False


class PerishableRetryCache:
    """Keyed async value cache with TTL, LRU eviction and backoff-gated retry."""

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Creates a new cache.

        Args:
            config: Capacity and retry settings (default: CacheConfig()).
            clock: Returns the current time in milliseconds since the epoch.
        """
        self._config = config or CacheConfig()
        self._clock = clock or wall_clock_ms
        self._entries: "OrderedDict[Hashable, _Entry]" = OrderedDict()

    @property
    def config(self) -> CacheConfig:
        return self._config

    async def get(self, key: Hashable, producer: Producer) -> Any:
        """
        Returns the value for ``key``, producing it if needed.

        Raises whatever the producer raised (or StaleKeyError) while the
        key's retry gate is closed, without invoking the producer again.
        """
        entry = self._touch(key)
        state = entry.state
        now = self._clock()

        if isinstance(state, _Pending):
            return await asyncio.shield(state.task)

        if isinstance(state, _Fresh) and now < state.expires_at_ms:
            return state.value

        if isinstance(state, _Failed) and now < state.next_retry_at_ms:
            raise state.error.with_traceback(state.traceback)

        task = asyncio.ensure_future(self._attempt(key, entry, producer, state))
        entry.state = _Pending(task=task)
        return await asyncio.shield(task)

    def invalidate(self, key: Hashable) -> None:
        """Drop a key's entry, including its backoff state."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def _touch(self, key: Hashable) -> _Entry:
        """Find or create the entry for a key and mark it most-recently-used."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
            return entry

        if len(self._entries) >= self._config.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Cache entry evicted", key=evicted)

        entry = _Entry()
        self._entries[key] = entry
        return entry

    async def _attempt(
        self,
        key: Hashable,
        entry: _Entry,
        producer: Producer,
        previous: Union[_Fresh, _Failed, None],
    ) -> Any:
        context = FetchContext(key=key, settled=entry.settled)

        logger.debug("Fetch started", key=key)
        try:
            value = await producer(context)
        except asyncio.CancelledError:
            entry.state = previous
            raise
        except Exception as e:
            self._fail(key, entry, previous, e)
            raise

        now = self._clock()
        if context.expires_at_ms is None or context.expires_at_ms <= now:
            entry.settled = entry.settled or context.settled
            error = StaleKeyError(key)
            self._fail(key, entry, previous, error)
            raise error

        entry.state = _Fresh(value=value, expires_at_ms=context.expires_at_ms)
        entry.settled = context.settled
        logger.debug("Fetch succeeded", key=key, expires_at_ms=context.expires_at_ms)
        return value

    def _fail(
        self,
        key: Hashable,
        entry: _Entry,
        previous: Union[_Fresh, _Failed, None],
        error: Exception,
    ) -> None:
        if isinstance(previous, _Failed):
            delay = min(previous.delay_ms * 2, self._config.retry_max_delay_ms)
        else:
            delay = self._config.retry_first_delay_ms

        clear_frames(error.__traceback__)
        now = self._clock()
        entry.state = _Failed(
            error=error,
            traceback=error.__traceback__,
            next_retry_at_ms=now + delay,
            delay_ms=delay,
        )
        logger.warning(
            "Fetch failed",
            key=key,
            error=repr(error),
            retry_delay_ms=delay,
        )
