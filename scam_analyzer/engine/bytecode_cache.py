"""
Bytecode Cache - TTL/LRU cache in front of an RPC bytecode fetcher

Keeps recently fetched contract bytecode in memory so repeated analyses of
the same address do not hit the RPC endpoint again.

Key Features:
- Time-to-live expiry checked lazily on access
- Least-recently-used eviction at a fixed entry bound
- Single in-flight fetch per address shared by concurrent callers
- Parallel batch retrieval bounded by a semaphore
- Per-call fetch timeout; failures surface as AnalysisError

File: scam_analyzer/engine/bytecode_cache.py
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from ..shared.constants import (
    BATCH_CONCURRENCY,
    BYTECODE_CACHE_MAX_ENTRIES,
    BYTECODE_CACHE_TTL_SECONDS,
)
from ..shared.exceptions import AnalysisError, ScamAnalyzerError
from ..shared.validation import normalize_address, validate_bytecode

logger = logging.getLogger(__name__)

FetchCode = Callable[[str], Awaitable[Union[str, bytes]]]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class CacheEntry:
    """Cached bytecode for one address."""
    bytecode: str
    inserted_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.inserted_at >= ttl_seconds


@dataclass
class CacheStatistics:
    """Cache performance statistics."""
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    shared_fetches: int = 0
    failures: int = 0
    evictions: int = 0
    expirations: int = 0

    def get_hit_ratio(self) -> float:
        """Calculate cache hit ratio."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hits': self.hits,
            'misses': self.misses,
            'fetches': self.fetches,
            'shared_fetches': self.shared_fetches,
            'failures': self.failures,
            'evictions': self.evictions,
            'expirations': self.expirations,
            'hit_ratio': self.get_hit_ratio(),
        }


@dataclass
class BatchFetchResult:
    """Outcome of a batch fetch; failed addresses appear only in failures."""
    bytecodes: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, ScamAnalyzerError] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.bytecodes)


# =============================================================================
# BYTECODE CACHE
# =============================================================================

class BytecodeCache:
    """
    Time- and size-bounded bytecode cache with per-address fetch de-duplication.

    The only mutable state shared between concurrent analyses. Fetches for
    different addresses run fully in parallel.
    """

    def __init__(
        self,
        fetch_code: FetchCode,
        ttl_seconds: float = BYTECODE_CACHE_TTL_SECONDS,
        max_entries: int = BYTECODE_CACHE_MAX_ENTRIES,
        max_concurrency: int = BATCH_CONCURRENCY,
        fetch_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            fetch_code: Async callable returning bytecode for an address
            ttl_seconds: Entry lifetime measured from insertion
            max_entries: LRU bound
            max_concurrency: Parallel fetch limit for get_batch
            fetch_timeout: Default per-fetch timeout in seconds
            clock: Monotonic time source, injectable for tests
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.fetch_code = fetch_code
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.max_concurrency = max_concurrency
        self.fetch_timeout = fetch_timeout
        self.clock = clock

        self._entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._inflight: Dict[str, asyncio.Task] = {}
        self.stats = CacheStatistics()
        self.logger = logger.getChild(self.__class__.__name__)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get(self, address: str, timeout: Optional[float] = None) -> str:
        """
        Return bytecode for an address, fetching it on a miss.

        Args:
            address: Contract address
            timeout: Fetch timeout in seconds; falls back to fetch_timeout

        Returns:
            Lowercase 0x-prefixed bytecode ('0x' for an account without code)

        Raises:
            ValidationError: If the address is malformed
            AnalysisError: If the underlying fetch fails or times out
        """
        key = normalize_address(address)

        cached = self._lookup(key)
        if cached is not None:
            self.stats.hits += 1
            return cached.bytecode

        self.stats.misses += 1
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._populate(key, timeout))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            self.stats.shared_fetches += 1
            self.logger.debug(f"Joining in-flight fetch for {key}")

        # Shielded so an abandoned caller does not cancel a shared fetch
        return await asyncio.shield(task)

    async def get_batch(self, addresses: Iterable[str]) -> BatchFetchResult:
        """
        Fetch many addresses in parallel, bounded by max_concurrency.

        A failure for one address never aborts the others; it is reported in
        the failures map keyed by the address as given.
        """
        result = BatchFetchResult()
        unique = list(dict.fromkeys(addresses))
        if not unique:
            return result

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch_one(address: str) -> str:
            async with semaphore:
                return await self.get(address)

        outcomes = await asyncio.gather(
            *(fetch_one(address) for address in unique),
            return_exceptions=True,
        )

        for address, outcome in zip(unique, outcomes):
            if isinstance(outcome, ScamAnalyzerError):
                result.failures[address] = outcome
            elif isinstance(outcome, BaseException):
                result.failures[address] = AnalysisError(str(outcome), cause=outcome)
            else:
                result.bytecodes[address] = outcome

        if result.failures:
            self.logger.warning(
                f"Batch fetch: {result.success_count}/{len(unique)} succeeded, "
                f"{len(result.failures)} failed"
            )
        return result

    async def preload(self, addresses: Iterable[str]) -> int:
        """Warm the cache; returns the number of addresses now cached."""
        result = await self.get_batch(addresses)
        return result.success_count

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def clear(self) -> None:
        """Drop every cached entry. In-flight fetches still complete."""
        count = len(self._entries)
        self._entries.clear()
        self.logger.info(f"Bytecode cache cleared ({count} entries)")

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            'size': len(self._entries),
            'max_entries': self.max_entries,
            'ttl_seconds': self.ttl_seconds,
            'in_flight': len(self._inflight),
        })
        return stats

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        entry = self._entries.get(address.lower())
        return entry is not None and not entry.is_expired(self.clock(), self.ttl_seconds)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock(), self.ttl_seconds):
            del self._entries[key]
            self.stats.expirations += 1
            self.logger.debug(f"Cache entry expired for {key}")
            return None
        self._entries.move_to_end(key)
        return entry

    async def _populate(self, key: str, timeout: Optional[float]) -> str:
        timeout = self.fetch_timeout if timeout is None else timeout
        self.stats.fetches += 1
        start_time = time.perf_counter()

        try:
            if timeout is not None:
                raw = await asyncio.wait_for(self.fetch_code(key), timeout=timeout)
            else:
                raw = await self.fetch_code(key)
            bytecode = validate_bytecode(raw)
        except asyncio.TimeoutError as e:
            self.stats.failures += 1
            raise AnalysisError(
                f"Request timeout while fetching bytecode for {key} after {timeout}s",
                cause=e,
            ) from e
        except AnalysisError:
            self.stats.failures += 1
            raise
        except Exception as e:
            self.stats.failures += 1
            raise AnalysisError(f"Failed to fetch bytecode for {key}: {e}", cause=e) from e

        self._store(key, bytecode)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        self.logger.debug(f"Fetched {len(bytecode) // 2 - 1} bytes for {key} in {elapsed_ms:.1f}ms")
        return bytecode

    def _store(self, key: str, bytecode: str) -> None:
        self._entries[key] = CacheEntry(bytecode=bytecode, inserted_at=self.clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            self.logger.debug(f"Evicted LRU entry {evicted}")

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved when every waiter has gone away
        if not task.cancelled():
            task.exception()
