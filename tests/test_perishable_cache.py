"""Tests for the perishable retry cache."""

import asyncio
import gc
import weakref

import pytest

from keyrotor.cache import FetchContext, PerishableRetryCache
from keyrotor.config import CacheConfig
from keyrotor.types import StaleKeyError, TransientFetchError


class Producer:
    """Scripted producer: each call pops the next outcome."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0
        self.contexts: list[FetchContext] = []

    async def __call__(self, context: FetchContext):
        self.calls += 1
        self.contexts.append(context)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        value, expires_at_ms = outcome
        context.expires_at_ms = expires_at_ms
        return value


@pytest.fixture
def cache(clock):
    return PerishableRetryCache(
        CacheConfig(max_entries=4, retry_first_delay_ms=500, retry_max_delay_ms=2000),
        clock=clock,
    )


class TestFreshEntries:
    """Values are served from cache until they expire."""

    @pytest.mark.asyncio
    async def test_hit_before_expiry(self, cache, clock) -> None:
        """Repeated gets before expiry reuse the first value."""
        producer = Producer(("value", 1000))

        first = await cache.get("k", producer)
        clock.advance(999)
        second = await cache.get("k", producer)

        assert first == "value"
        assert second is first
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_refetch_after_expiry(self, cache, clock) -> None:
        """Crossing the expiry invokes the producer again without a delay."""
        producer = Producer(("old", 1000), ("new", 5000))

        assert await cache.get("k", producer) == "old"
        clock.advance(1000)
        assert await cache.get("k", producer) == "new"
        assert producer.calls == 2

    @pytest.mark.asyncio
    async def test_already_expired_value_is_stale(self, cache, clock) -> None:
        """A value arriving already expired fails with StaleKeyError."""
        clock.now = 100
        producer = Producer(("value", 0))

        with pytest.raises(StaleKeyError):
            await cache.get("k", producer)

    @pytest.mark.asyncio
    async def test_missing_expiry_is_stale(self, cache) -> None:
        """A producer that never sets an expiry yields StaleKeyError."""

        async def producer(context):
            return "value"

        with pytest.raises(StaleKeyError):
            await cache.get("k", producer)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, cache) -> None:
        """Each key gets its own producer invocation."""
        producer_a = Producer(("a", 1000))
        producer_b = Producer(("b", 1000))

        assert await cache.get("a", producer_a) == "a"
        assert await cache.get("b", producer_b) == "b"
        assert await cache.get("a", producer_b) == "a"
        assert producer_b.calls == 1


class TestFailureGating:
    """Failures are cached until their retry delay passes."""

    @pytest.mark.asyncio
    async def test_failure_reraised_before_retry(self, cache, clock) -> None:
        """A get inside the retry window raises the same error without fetching."""
        error = TransientFetchError("backend down")
        producer = Producer(error)

        with pytest.raises(TransientFetchError) as first:
            await cache.get("k", producer)
        clock.advance(499)
        with pytest.raises(TransientFetchError) as second:
            await cache.get("k", producer)

        assert first.value is error
        assert second.value is error
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_retry_after_delay(self, cache, clock) -> None:
        """Once the delay passes the producer is invoked again."""
        producer = Producer(TransientFetchError("down"), ("value", 10_000))

        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)
        clock.advance(500)

        assert await cache.get("k", producer) == "value"
        assert producer.calls == 2

    @pytest.mark.asyncio
    async def test_any_exception_is_cached(self, cache) -> None:
        """Failure reasons are opaque to the cache."""
        producer = Producer(LookupError("nope"))

        with pytest.raises(LookupError):
            await cache.get("k", producer)
        with pytest.raises(LookupError):
            await cache.get("k", producer)
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_failure_releases_producer_locals(self, cache) -> None:
        """A cached failure does not keep the producer's locals alive."""

        class Resource:
            pass

        refs = []

        async def producer(context):
            resource = Resource()
            refs.append(weakref.ref(resource))
            raise TransientFetchError("down")

        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)
        gc.collect()

        assert refs[0]() is None
        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)

    @pytest.mark.asyncio
    async def test_stale_engages_gate(self, cache, clock) -> None:
        """A stale value is gated like any other failure."""
        clock.now = 100
        producer = Producer(("value", 50))

        with pytest.raises(StaleKeyError):
            await cache.get("k", producer)
        with pytest.raises(StaleKeyError):
            await cache.get("k", producer)
        assert producer.calls == 1


class TestBackoff:
    """Retry delays double, clamp, and reset."""

    @pytest.mark.asyncio
    async def test_delay_doubles_and_clamps(self, cache, clock) -> None:
        """Consecutive failures wait 500, 1000, 2000, 2000 ms."""
        producer = Producer(TransientFetchError("down"))

        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)

        for expected in (500, 1000, 2000, 2000):
            clock.advance(expected - 1)
            with pytest.raises(TransientFetchError):
                await cache.get("k", producer)
            calls = producer.calls
            clock.advance(1)
            with pytest.raises(TransientFetchError):
                await cache.get("k", producer)
            assert producer.calls == calls + 1

    @pytest.mark.asyncio
    async def test_success_resets_backoff(self, cache, clock) -> None:
        """After a success the next failure waits retry_first_delay_ms again."""
        producer = Producer(
            TransientFetchError("down"),
            TransientFetchError("down"),
            ("value", 2000),
            TransientFetchError("down"),
        )

        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)
        clock.advance(500)
        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)
        clock.advance(1000)
        assert await cache.get("k", producer) == "value"

        clock.now = 2000
        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)
        assert producer.calls == 4

        clock.advance(499)
        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)
        assert producer.calls == 4
        clock.advance(1)
        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)
        assert producer.calls == 5

    @pytest.mark.asyncio
    async def test_zero_first_delay(self, clock) -> None:
        """A zero first delay retries on the very next get."""
        cache = PerishableRetryCache(
            CacheConfig(max_entries=1, retry_first_delay_ms=0, retry_max_delay_ms=0),
            clock=clock,
        )
        producer = Producer(TransientFetchError("down"))

        for _ in range(3):
            with pytest.raises(TransientFetchError):
                await cache.get("k", producer)
        assert producer.calls == 3


class TestSettled:
    """The settled flag survives across attempts."""

    @pytest.mark.asyncio
    async def test_settled_flag_handed_back(self, cache, clock) -> None:
        """A producer sees settled=True after marking a success final."""
        contexts = []

        async def producer(context):
            contexts.append(context.settled)
            if context.settled:
                raise StaleKeyError(context.key)
            context.expires_at_ms = 1000
            context.settled = True
            return "value"

        assert await cache.get("k", producer) == "value"
        clock.advance(1000)
        with pytest.raises(StaleKeyError):
            await cache.get("k", producer)
        clock.advance(500)
        with pytest.raises(StaleKeyError):
            await cache.get("k", producer)

        assert contexts == [False, True, True]


class TestConcurrency:
    """Concurrent gets share one in-flight fetch."""

    @pytest.mark.asyncio
    async def test_concurrent_gets_coalesce(self, cache) -> None:
        """Only one producer call happens while a fetch is in flight."""
        release = asyncio.Event()
        calls = 0

        async def producer(context):
            nonlocal calls
            calls += 1
            await release.wait()
            context.expires_at_ms = 1000
            return "value"

        tasks = [asyncio.ensure_future(cache.get("k", producer)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert results == ["value"] * 5
        assert calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_failure(self, cache) -> None:
        """Every waiter observes the in-flight failure."""
        release = asyncio.Event()
        calls = 0

        async def producer(context):
            nonlocal calls
            calls += 1
            await release.wait()
            raise TransientFetchError("down")

        tasks = [asyncio.ensure_future(cache.get("k", producer)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, TransientFetchError) for r in results)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_fetch(self, cache) -> None:
        """Cancelling one caller leaves the shared fetch running."""
        release = asyncio.Event()

        async def producer(context):
            await release.wait()
            context.expires_at_ms = 1000
            return "value"

        first = asyncio.ensure_future(cache.get("k", producer))
        second = asyncio.ensure_future(cache.get("k", producer))
        await asyncio.sleep(0)
        first.cancel()
        release.set()

        assert await second == "value"
        with pytest.raises(asyncio.CancelledError):
            await first

    @pytest.mark.asyncio
    async def test_abandoned_failure_is_retrieved(self, cache) -> None:
        """A failure nobody waits for is not reported as unretrieved."""
        release = asyncio.Event()
        reported = []

        async def producer(context):
            await release.wait()
            raise TransientFetchError("down")

        loop = asyncio.get_running_loop()
        loop.set_exception_handler(lambda loop, context: reported.append(context))
        try:
            waiter = asyncio.ensure_future(cache.get("k", producer))
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

            release.set()
            for _ in range(5):
                await asyncio.sleep(0)
            gc.collect()
        finally:
            loop.set_exception_handler(None)

        assert reported == []
        with pytest.raises(TransientFetchError):
            await cache.get("k", producer)


class TestEviction:
    """Least-recently-used keys are evicted at capacity."""

    @pytest.mark.asyncio
    async def test_lru_eviction(self, clock) -> None:
        """Inserting past capacity evicts the least recently used key."""
        cache = PerishableRetryCache(CacheConfig(max_entries=2), clock=clock)
        producer = Producer(("value", 1000))

        await cache.get("a", producer)
        await cache.get("b", producer)
        await cache.get("a", producer)
        await cache.get("c", producer)

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2

        await cache.get("b", producer)
        assert producer.calls == 4

    @pytest.mark.asyncio
    async def test_eviction_discards_backoff(self, clock) -> None:
        """An evicted key starts over without a retry gate."""
        cache = PerishableRetryCache(CacheConfig(max_entries=1), clock=clock)
        failing = Producer(TransientFetchError("down"))
        other = Producer(("value", 1000))

        with pytest.raises(TransientFetchError):
            await cache.get("a", failing)
        await cache.get("b", other)
        with pytest.raises(TransientFetchError):
            await cache.get("a", failing)

        assert failing.calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_and_clear(self, cache) -> None:
        """invalidate drops one key, clear drops all."""
        producer = Producer(("value", 1000))
        await cache.get("a", producer)
        await cache.get("b", producer)

        cache.invalidate("a")
        assert "a" not in cache
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0
