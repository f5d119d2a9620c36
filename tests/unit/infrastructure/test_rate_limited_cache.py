"""Unit tests for the rate-limited response cache."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from nominal_ops.domain.errors import LedgerTimeoutError
from nominal_ops.domain.ledger.entities import JsonRpcResponse, Layer, UpstreamError
from nominal_ops.infrastructure.cache import (
    DEFAULT_TTL_SECONDS,
    RateLimitedCache,
    cache_key,
    method_of,
    should_cache,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def ok(result: Any = None) -> JsonRpcResponse:
    return JsonRpcResponse(id="1", result=result if result is not None else {"ok": 1})


def failed(code: int = 4412) -> JsonRpcResponse:
    return JsonRpcResponse(id="1", error=UpstreamError(code=code, message="nope"))


class CountingProducer:
    """Producer that counts invocations and optionally blocks until released."""

    def __init__(self, response: JsonRpcResponse, *, block: bool = False) -> None:
        self.response = response
        self.calls = 0
        self.release = asyncio.Event()
        if not block:
            self.release.set()
        self.error: BaseException | None = None

    async def __call__(self) -> JsonRpcResponse:
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.response


class TestCacheKey:
    def test_key_order_independent(self) -> None:
        p1 = {"page": 1, "filters": {"status": "new", "ext_key": "a"}}
        p2 = {"filters": {"ext_key": "a", "status": "new"}, "page": 1}
        assert cache_key("list_deals", Layer.PRE, p1) == cache_key(
            "list_deals", Layer.PRE, p2
        )

    def test_key_format(self) -> None:
        key = cache_key("list_beneficiary", Layer.PRE, {"page": 1, "a": [1, 2]})
        assert key == 'pre:list_beneficiary:{"a":[1,2],"page":1}'

    def test_layer_and_method_distinguish_keys(self) -> None:
        params = {"page": 1}
        keys = {
            cache_key("list_beneficiary", Layer.PRE, params),
            cache_key("list_beneficiary", Layer.PROD, params),
            cache_key("list_virtual_account", Layer.PRE, params),
        }
        assert len(keys) == 3

    def test_should_cache_only_rate_limited_reads(self) -> None:
        for method in (
            "list_virtual_account",
            "get_virtual_account",
            "list_virtual_transaction",
            "list_beneficiary",
            "get_beneficiary",
            "list_payments_v2",
            "get_payment",
        ):
            assert should_cache(method)
        for method in ("create_deal", "get_deal", "execute_deal", "echo"):
            assert not should_cache(method)


class TestStorage:
    def test_entry_visible_strictly_before_expiry(self) -> None:
        clock = FakeClock()
        cache = RateLimitedCache(clock=clock)
        cache.set("k", ok(), ttl=300)

        clock.now = 1_000.0 + 299.999
        assert cache.get("k") is not None

        clock.now = 1_000.0 + 300
        assert cache.get("k") is None
        # Expired reads evict the entry.
        assert cache.stats().size == 0

    def test_error_responses_never_stored(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        cache.set("k", failed())
        assert cache.get("k") is None
        assert cache.stats().size == 0

    def test_default_and_per_method_ttl(self) -> None:
        cache = RateLimitedCache(method_ttls={"get_payment": 60})
        assert cache.ttl_for("get_payment") == 60
        assert cache.ttl_for("list_beneficiary") == DEFAULT_TTL_SECONDS == 300

    def test_set_without_ttl_uses_method_from_key(self) -> None:
        clock = FakeClock()
        cache = RateLimitedCache(method_ttls={"get_payment": 60}, clock=clock)
        payment_key = cache_key("get_payment", Layer.PRE, {"payment_id": "p"})
        beneficiary_key = cache_key("list_beneficiary", Layer.PRE, {})

        cache.set(payment_key, ok())
        cache.set(beneficiary_key, ok())
        clock.now += 61

        assert cache.get(payment_key) is None
        assert cache.get(beneficiary_key) is not None

    def test_method_of(self) -> None:
        assert method_of(cache_key("get_payment", "pre", {"a": "x:y"})) == "get_payment"
        assert method_of("plain") is None

    def test_non_positive_default_ttl_rejected(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            RateLimitedCache(0)

    def test_invalidate(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        cache.set("k", ok())
        cache.invalidate("k")
        cache.invalidate("missing")
        assert cache.get("k") is None

    def test_invalidate_method_scoped_to_layer(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        pre_a = cache_key("list_beneficiary", Layer.PRE, {"page": 1})
        pre_b = cache_key("list_beneficiary", Layer.PRE, {"page": 2})
        prod = cache_key("list_beneficiary", Layer.PROD, {"page": 1})
        other = cache_key("get_beneficiary", Layer.PRE, {"beneficiary_id": "b"})
        for key in (pre_a, pre_b, prod, other):
            cache.set(key, ok())

        assert cache.invalidate_method("list_beneficiary", Layer.PRE) == 2
        assert cache.get(pre_a) is None
        assert cache.get(prod) is not None
        assert cache.get(other) is not None

    def test_cleanup_expired(self) -> None:
        clock = FakeClock()
        cache = RateLimitedCache(clock=clock)
        cache.set("short", ok(), ttl=10)
        cache.set("long", ok(), ttl=600)

        clock.now += 60
        assert cache.cleanup_expired() == 1
        assert cache.stats().size == 1

    def test_clear(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        cache.set("a", ok())
        cache.set("b", ok())
        cache.clear()
        assert cache.stats().size == 0


class TestObservability:
    def test_stats_hit_rate(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        assert cache.stats().hit_rate == 0.0

        cache.set("k", ok())
        cache.get("k")
        cache.get("k")
        cache.get("k")
        cache.get("missing")

        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (3, 1, 1)
        assert stats.hit_rate == 0.75

    def test_info_for_live_entry(self) -> None:
        clock = FakeClock()
        cache = RateLimitedCache(clock=clock)
        cache.set("k", ok(), ttl=300)
        clock.now += 100

        info = cache.info("k")
        assert info.cached is True
        assert info.age_seconds == 100
        assert info.remaining_ms == 200_000
        assert info.next_allowed_at == info.expires_at
        assert info.cached_at is not None
        assert (info.expires_at - info.cached_at).total_seconds() == 300

    def test_info_for_missing_entry(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        assert cache.info("k").cached is False
        assert cache.time_remaining_ms("k") is None

    def test_time_remaining(self) -> None:
        clock = FakeClock()
        cache = RateLimitedCache(clock=clock)
        cache.set("k", ok(), ttl=5)
        clock.now += 2
        assert cache.time_remaining_ms("k") == 3_000
        clock.now += 10
        assert cache.time_remaining_ms("k") is None


class TestWithCache:
    @pytest.mark.asyncio
    async def test_hit_skips_producer(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(ok({"items": [1]}))

        first = await cache.with_cache("k", producer)
        second = await cache.with_cache("k", producer)

        assert producer.calls == 1
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.data == first.data
        assert second.cache_info.cached is True

    @pytest.mark.asyncio
    async def test_expired_entry_refetched(self) -> None:
        clock = FakeClock()
        cache = RateLimitedCache(clock=clock)
        producer = CountingProducer(ok())

        await cache.with_cache("k", producer, ttl=300)
        clock.now += 300
        result = await cache.with_cache("k", producer, ttl=300)

        assert producer.calls == 2
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_fresh_entry(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(ok())

        await cache.with_cache("k", producer)
        result = await cache.with_cache("k", producer, force_refresh=True)

        assert producer.calls == 2
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_error_response_returned_but_not_cached(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(failed())

        first = await cache.with_cache("k", producer)
        second = await cache.with_cache("k", producer)

        assert first.data.is_error
        assert first.cache_info.cached is False
        assert second.from_cache is False
        assert producer.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_call(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(ok({"n": 1}), block=True)

        tasks = [
            asyncio.create_task(cache.with_cache("k", producer)) for _ in range(5)
        ]
        await asyncio.sleep(0)
        assert cache.inflight_count() == 1

        producer.release.set()
        results = await asyncio.gather(*tasks)

        assert producer.calls == 1
        assert [r.from_cache for r in results].count(False) == 1
        assert all(r.data == results[0].data for r in results)
        assert cache.inflight_count() == 0

    @pytest.mark.asyncio
    async def test_waiters_on_error_response_not_from_cache(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(failed(), block=True)

        tasks = [
            asyncio.create_task(cache.with_cache("k", producer)) for _ in range(3)
        ]
        await asyncio.sleep(0)
        producer.release.set()
        results = await asyncio.gather(*tasks)

        assert producer.calls == 1
        assert all(r.data.is_error for r in results)
        assert [r.from_cache for r in results] == [False, False, False]
        assert all(r.cache_info.cached is False for r in results)

    @pytest.mark.asyncio
    async def test_producer_failure_reaches_every_waiter(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(ok(), block=True)
        producer.error = LedgerTimeoutError("timed out")

        tasks = [
            asyncio.create_task(cache.with_cache("k", producer)) for _ in range(3)
        ]
        await asyncio.sleep(0)
        producer.release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert producer.calls == 1
        assert all(r is producer.error for r in results)
        assert cache.inflight_count() == 0
        assert cache.stats().size == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_poison_next_call(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(ok())
        producer.error = LedgerTimeoutError("timed out")

        with pytest.raises(LedgerTimeoutError):
            await cache.with_cache("k", producer)

        producer.error = None
        result = await cache.with_cache("k", producer)
        assert result.from_cache is False
        assert producer.calls == 2

    @pytest.mark.asyncio
    async def test_leader_cancellation_cancels_waiters(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(ok(), block=True)

        leader = asyncio.create_task(cache.with_cache("k", producer))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(cache.with_cache("k", producer))
        await asyncio.sleep(0)

        leader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert leader.cancelled()
        assert cache.inflight_count() == 0

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_share(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        producer = CountingProducer(ok())

        await asyncio.gather(
            cache.with_cache("a", producer), cache.with_cache("b", producer)
        )
        assert producer.calls == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_sweeper_purges_expired_entries(self) -> None:
        clock = FakeClock()
        cache = RateLimitedCache(clock=clock, sweep_interval=0.01)
        cache.set("k", ok(), ttl=1)
        clock.now += 5

        cache.start()
        await asyncio.sleep(0.05)
        assert cache.stats().size == 0

        await cache.aclose()

    @pytest.mark.asyncio
    async def test_aclose_clears_state(self) -> None:
        cache = RateLimitedCache(clock=FakeClock())
        cache.start()
        cache.start()
        cache.set("k", ok())

        await cache.aclose()

        assert cache.stats().size == 0
