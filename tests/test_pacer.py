"""Tests for the token-bucket pacer."""

import asyncio

import pytest

from openapi_adapter.pacer import TokenBucket


class TestTokenBucket:
    @pytest.mark.asyncio
    async def test_first_call_is_admitted_immediately(self, clock):
        bucket = TokenBucket(2, clock=clock, sleep=clock.sleep)
        await bucket.acquire()
        assert clock.sleeps == []
        assert bucket.tokens == 0

    @pytest.mark.asyncio
    async def test_five_calls_at_two_per_second(self, clock):
        bucket = TokenBucket(2, clock=clock, sleep=clock.sleep)
        start = clock.now
        for _ in range(5):
            await bucket.acquire()
            assert bucket.tokens >= 0
        assert clock.now - start >= 1.8
        assert clock.now - start < 2.1

    @pytest.mark.asyncio
    async def test_concurrent_waiters_never_overdraw(self, clock):
        bucket = TokenBucket(2, clock=clock, sleep=clock.sleep)
        start = clock.now
        await asyncio.gather(*(bucket.acquire() for _ in range(5)))
        assert bucket.tokens >= 0
        assert clock.now - start >= 1.8

    @pytest.mark.asyncio
    async def test_refill_is_capped_at_capacity(self, clock):
        bucket = TokenBucket(10, clock=clock, sleep=clock.sleep)
        clock.now += 100
        await bucket.acquire()
        assert bucket.capacity == 10
        assert bucket.tokens == pytest.approx(9)

    @pytest.mark.asyncio
    async def test_fractional_rate_has_capacity_of_one(self, clock):
        bucket = TokenBucket(0.5, clock=clock, sleep=clock.sleep)
        await bucket.acquire()
        await bucket.acquire()
        assert bucket.capacity == 1
        assert sum(clock.sleeps) == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_non_positive_rate_disables_pacing(self, clock):
        bucket = TokenBucket(0, clock=clock, sleep=clock.sleep)
        for _ in range(10):
            await bucket.acquire()
        assert not bucket.enabled
        assert clock.sleeps == []
