"""
Tests for the bytecode cache: single-flight fetches, TTL, LRU and batches.

File: tests/test_bytecode_cache.py

Run with: python -m pytest tests/test_bytecode_cache.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from factories import CLEAN_ADDRESS, KNOWN_MALICIOUS, OTHER_ADDRESS, PLAIN_BYTECODE
from scam_analyzer.engine.bytecode_cache import BytecodeCache, CacheStatistics
from scam_analyzer.shared.exceptions import AnalysisError, BytecodeError, ValidationError


def address(n: int) -> str:
    return '0x' + f'{n:040x}'


# =============================================================================
# SINGLE-FLIGHT FETCHES
# =============================================================================

class TestConcurrentFetches:

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_fetch(self):
        gate = asyncio.Event()

        async def slow_fetch(addr):
            await gate.wait()
            return PLAIN_BYTECODE

        fetch = AsyncMock(side_effect=slow_fetch)
        cache = BytecodeCache(fetch)

        first = asyncio.create_task(cache.get(CLEAN_ADDRESS))
        second = asyncio.create_task(cache.get(CLEAN_ADDRESS.upper().replace('0X', '0x')))
        await asyncio.sleep(0)
        gate.set()

        results = await asyncio.gather(first, second)

        assert results == [PLAIN_BYTECODE, PLAIN_BYTECODE]
        assert fetch.await_count == 1
        assert cache.stats.shared_fetches == 1

    @pytest.mark.asyncio
    async def test_unrelated_keys_fetch_in_parallel(self):
        gate = asyncio.Event()
        started = []

        async def slow_fetch(addr):
            started.append(addr)
            await gate.wait()
            return PLAIN_BYTECODE

        cache = BytecodeCache(AsyncMock(side_effect=slow_fetch))
        tasks = [asyncio.create_task(cache.get(a)) for a in (CLEAN_ADDRESS, OTHER_ADDRESS)]
        for _ in range(3):
            await asyncio.sleep(0)

        assert sorted(started) == sorted([CLEAN_ADDRESS, OTHER_ADDRESS])
        gate.set()
        await asyncio.gather(*tasks)

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_fetch(self):
        gate = asyncio.Event()

        async def slow_fetch(addr):
            await gate.wait()
            return PLAIN_BYTECODE

        fetch = AsyncMock(side_effect=slow_fetch)
        cache = BytecodeCache(fetch)

        abandoned = asyncio.create_task(cache.get(CLEAN_ADDRESS))
        await asyncio.sleep(0)
        waiting = asyncio.create_task(cache.get(CLEAN_ADDRESS))
        await asyncio.sleep(0)

        abandoned.cancel()
        gate.set()

        assert await waiting == PLAIN_BYTECODE
        with pytest.raises(asyncio.CancelledError):
            await abandoned
        assert fetch.await_count == 1
        assert CLEAN_ADDRESS in cache


# =============================================================================
# EXPIRY & EVICTION
# =============================================================================

class TestExpiry:

    @pytest.mark.asyncio
    async def test_entry_served_before_ttl(self, clock):
        fetch = AsyncMock(return_value=PLAIN_BYTECODE)
        cache = BytecodeCache(fetch, clock=clock)

        await cache.get(CLEAN_ADDRESS)
        clock.advance(9 * 60)
        assert await cache.get(CLEAN_ADDRESS) == PLAIN_BYTECODE

        assert fetch.await_count == 1
        assert cache.stats.hits == 1

    @pytest.mark.asyncio
    async def test_entry_refetched_after_ttl(self, clock):
        fetch = AsyncMock(side_effect=['0x6001', '0x6002'])
        cache = BytecodeCache(fetch, clock=clock)

        assert await cache.get(CLEAN_ADDRESS) == '0x6001'
        clock.advance(11 * 60)
        assert CLEAN_ADDRESS not in cache
        assert await cache.get(CLEAN_ADDRESS) == '0x6002'

        assert fetch.await_count == 2
        assert cache.stats.expirations == 1

    @pytest.mark.asyncio
    async def test_lru_eviction(self):
        fetch = AsyncMock(return_value=PLAIN_BYTECODE)
        cache = BytecodeCache(fetch, max_entries=2)

        await cache.get(address(1))
        await cache.get(address(2))
        await cache.get(address(1))
        await cache.get(address(3))

        assert len(cache) == 2
        assert address(1) in cache
        assert address(2) not in cache
        assert address(3) in cache
        assert cache.stats.evictions == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        fetch = AsyncMock(return_value=PLAIN_BYTECODE)
        cache = BytecodeCache(fetch)
        await cache.get(CLEAN_ADDRESS)

        cache.clear()

        assert len(cache) == 0
        await cache.get(CLEAN_ADDRESS)
        assert fetch.await_count == 2


# =============================================================================
# FAILURES
# =============================================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_fetch_error_wrapped_with_cause(self):
        cause = ConnectionError("connection refused")
        fetch = AsyncMock(side_effect=cause)
        cache = BytecodeCache(fetch)

        with pytest.raises(AnalysisError) as exc_info:
            await cache.get(CLEAN_ADDRESS)

        assert exc_info.value.cause is cause
        assert CLEAN_ADDRESS not in cache
        assert cache.stats.failures == 1

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        fetch = AsyncMock(side_effect=[ConnectionError("down"), PLAIN_BYTECODE])
        cache = BytecodeCache(fetch)

        with pytest.raises(AnalysisError):
            await cache.get(CLEAN_ADDRESS)
        assert await cache.get(CLEAN_ADDRESS) == PLAIN_BYTECODE

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def hang(addr):
            await asyncio.sleep(10)

        cache = BytecodeCache(AsyncMock(side_effect=hang))

        with pytest.raises(AnalysisError) as exc_info:
            await cache.get(CLEAN_ADDRESS, timeout=0.01)

        assert 'timeout' in exc_info.value.message.lower()
        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_malformed_bytecode_rejected(self):
        cache = BytecodeCache(AsyncMock(return_value='0xnothex'))
        with pytest.raises(BytecodeError):
            await cache.get(CLEAN_ADDRESS)

    @pytest.mark.asyncio
    async def test_bytes_are_normalized(self):
        cache = BytecodeCache(AsyncMock(return_value=b'\x60\x80'))
        assert await cache.get(CLEAN_ADDRESS) == '0x6080'

    @pytest.mark.asyncio
    async def test_invalid_address(self):
        fetch = AsyncMock(return_value=PLAIN_BYTECODE)
        cache = BytecodeCache(fetch)
        with pytest.raises(ValidationError):
            await cache.get('0x1234')
        fetch.assert_not_awaited()


# =============================================================================
# BATCH
# =============================================================================

class TestBatch:

    @pytest.mark.asyncio
    async def test_failures_reported_separately(self):
        async def fetch(addr):
            if addr == OTHER_ADDRESS:
                raise ConnectionError("rate limited")
            return PLAIN_BYTECODE

        cache = BytecodeCache(AsyncMock(side_effect=fetch))
        result = await cache.get_batch([CLEAN_ADDRESS, OTHER_ADDRESS, 'bad-address', CLEAN_ADDRESS])

        assert result.bytecodes == {CLEAN_ADDRESS: PLAIN_BYTECODE}
        assert set(result.failures) == {OTHER_ADDRESS, 'bad-address'}
        assert isinstance(result.failures[OTHER_ADDRESS], AnalysisError)
        assert isinstance(result.failures['bad-address'], ValidationError)

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        active = 0
        peak = 0

        async def fetch(addr):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return PLAIN_BYTECODE

        cache = BytecodeCache(AsyncMock(side_effect=fetch), max_concurrency=2)
        result = await cache.get_batch([address(n) for n in range(1, 7)])

        assert result.success_count == 6
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_batch_uses_cached_entries(self):
        fetch = AsyncMock(return_value=PLAIN_BYTECODE)
        cache = BytecodeCache(fetch)
        await cache.get(KNOWN_MALICIOUS)

        loaded = await cache.preload([KNOWN_MALICIOUS, CLEAN_ADDRESS])

        assert loaded == 2
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        cache = BytecodeCache(AsyncMock())
        result = await cache.get_batch([])
        assert result.bytecodes == {} and result.failures == {}


class TestStatistics:

    def test_hit_ratio(self):
        stats = CacheStatistics(hits=3, misses=1)
        assert stats.get_hit_ratio() == 0.75
        assert CacheStatistics().get_hit_ratio() == 0.0

    def test_rejects_invalid_bounds(self):
        with pytest.raises(ValueError):
            BytecodeCache(AsyncMock(), max_entries=0)
