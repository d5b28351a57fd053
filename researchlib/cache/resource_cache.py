"""Process-local, TTL-per-resource-class, single-flight resource cache.

Each key moves through an explicit state machine:

    EMPTY -> CLAIMED -> PUBLISHED <-> EXPIRED
               |
               +-> EMPTY (computation failed or was abandoned)

The first caller that misses on a key claims it and starts the upstream
computation as its own task; every caller that misses on the same key before
the task resolves waits on that task. Failures are delivered to every waiter
and are never stored.

All state changes run on the event loop between awaits, so no lock spans
unrelated keys.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class ResourceClass(str, Enum):
    PAPER_BY_ID = "paper_by_id"
    CITATION_NETWORK = "citation_network"
    SEARCH = "search"


class EntryState(str, Enum):
    EMPTY = "empty"
    CLAIMED = "claimed"
    PUBLISHED = "published"
    EXPIRED = "expired"


DEFAULT_TTL_SECONDS: Dict[str, float] = {
    ResourceClass.PAPER_BY_ID.value: 10 * 60,
    ResourceClass.CITATION_NETWORK.value: 15 * 60,
    ResourceClass.SEARCH.value: 5 * 60,
}


class CacheInvariantError(RuntimeError):
    """Raised when the claim/publish protocol is violated. Indicates a bug."""
    pass


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class _InFlight:
    """A claimed key: the shared computation and how many callers await it."""

    def __init__(self, resource_class: ResourceClass):
        self.resource_class = resource_class
        self.task: Optional[asyncio.Task] = None
        self.waiters = 0


def _consume_exception(task: asyncio.Task) -> None:
    # Mark the result retrieved even when every waiter has gone away
    if not task.cancelled():
        task.exception()


class ResourceCache:
    """
    Keyed store with per-resource-class TTLs and single-flight fills.

    Args:
        ttl_seconds: TTL per resource class name; missing classes fall back
            to DEFAULT_TTL_SECONDS.
        max_entries: Upper bound on stored entries. Expired entries are
            swept first, then the oldest are evicted.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: Optional[Dict[str, float]] = None,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_seconds = dict(DEFAULT_TTL_SECONDS)
        if ttl_seconds:
            self._ttl_seconds.update(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, _InFlight] = {}
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_policy(cls, clock: Callable[[], float] = time.monotonic) -> "ResourceCache":
        from researchlib.config.admin_policy import admin_policy
        caching = admin_policy.caching
        return cls(ttl_seconds=caching.ttl_seconds, max_entries=caching.max_entries, clock=clock)

    def ttl_for(self, resource_class: ResourceClass) -> float:
        return self._ttl_seconds[ResourceClass(resource_class).value]

    # ----- reads -----

    async def get(
        self,
        key: str,
        resource_class: ResourceClass,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the fresh value for ``key``, computing it at most once concurrently.

        Args:
            key: Cache key, unique per resource
            resource_class: Determines the TTL applied when the value is stored
            compute_fn: Zero-argument coroutine function producing the value

        Returns:
            The cached or freshly computed value. Concurrent callers for the
            same missing key receive the identical object.

        Raises:
            Whatever compute_fn raised, to every caller sharing the computation.
        """
        entry = self._fresh_entry(key)
        if entry is not None:
            self.hits += 1
            logger.debug(f"ResourceCache: hit {key}")
            return entry.value

        self.misses += 1
        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = self._claim(key, ResourceClass(resource_class), compute_fn)
            logger.debug(f"ResourceCache: miss {key}, claimed as leader")
        else:
            logger.debug(f"ResourceCache: miss {key}, joining in-flight computation")

        return await self._wait(key, inflight)

    def peek(self, key: str) -> Optional[Any]:
        """Fresh value or None, without computing."""
        entry = self._fresh_entry(key)
        return entry.value if entry is not None else None

    def state(self, key: str) -> EntryState:
        if key in self._inflight:
            return EntryState.CLAIMED
        entry = self._entries.get(key)
        if entry is None:
            return EntryState.EMPTY
        if entry.is_expired(self._clock()):
            return EntryState.EXPIRED
        return EntryState.PUBLISHED

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "entries": len(self._entries),
            "in_flight": len(self._inflight),
            "hits": self.hits,
            "misses": self.misses,
        }

    # ----- maintenance -----

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number evicted."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"ResourceCache: swept {len(expired)} expired entries")
        return len(expired)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Background loop bounding memory; cancelled on shutdown."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep()

    # ----- claim / publish / release -----

    def _fresh_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Lazy eviction
            del self._entries[key]
            return None
        return entry

    def _claim(
        self,
        key: str,
        resource_class: ResourceClass,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> _InFlight:
        if key in self._inflight:
            raise CacheInvariantError(f"Key '{key}' is already claimed")
        inflight = _InFlight(resource_class)
        self._inflight[key] = inflight
        inflight.task = asyncio.ensure_future(self._compute(key, inflight, compute_fn))
        inflight.task.add_done_callback(_consume_exception)
        return inflight

    async def _compute(self, key: str, inflight: _InFlight, compute_fn: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await compute_fn()
        except BaseException as e:
            self._release(key, inflight)
            if not isinstance(e, asyncio.CancelledError):
                logger.warning(f"ResourceCache: computation for {key} failed, not cached: {e!r}")
            raise
        self._publish(key, inflight, value)
        return value

    def _publish(self, key: str, inflight: _InFlight, value: Any) -> None:
        if self._inflight.get(key) is not inflight:
            raise CacheInvariantError(f"Publishing '{key}' without holding its claim")
        del self._inflight[key]
        self._entries[key] = CacheEntry(
            value=value,
            created_at=self._clock(),
            ttl=self.ttl_for(inflight.resource_class),
        )
        self._enforce_bound()

    def _release(self, key: str, inflight: _InFlight) -> None:
        if self._inflight.get(key) is inflight:
            del self._inflight[key]

    async def _wait(self, key: str, inflight: _InFlight) -> Any:
        inflight.waiters += 1
        try:
            return await asyncio.shield(inflight.task)
        finally:
            inflight.waiters -= 1
            if inflight.waiters == 0 and not inflight.task.done():
                # Last interested caller went away
                logger.debug(f"ResourceCache: abandoning computation for {key}")
                self._release(key, inflight)
                inflight.task.cancel()

    def _enforce_bound(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        self.sweep()
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        oldest = sorted(self._entries.items(), key=lambda item: item[1].created_at)[:overflow]
        for key, _ in oldest:
            del self._entries[key]
        logger.debug(f"ResourceCache: evicted {overflow} oldest entries")
