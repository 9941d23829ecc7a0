"""
Keyed query cache shared by every view of server-derived data.

Keys are tuples such as ("projects",) or ("tasks", project_id). Matching for
cancel/invalidate is by tuple prefix, so ("projects",) also covers
("projects", project_id).

Concurrency model: one asyncio event loop, no locks. Reads run as tasks
(blocking fetchers in a worker thread); a read that is cancelled before it
resolves never writes its result. Optimistic writers cancel reads for their
key first, snapshot the entry, write, and restore the snapshot on failure.
"""
import asyncio
import copy
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Key = Tuple[Any, ...]

EVENT_UPDATED = "updated"
EVENT_INVALIDATED = "invalidated"
EVENT_REMOVED = "removed"


def _matches(key: Key, prefix: Key) -> bool:
    return key[:len(prefix)] == tuple(prefix)


def _is_async(fetcher: Callable) -> bool:
    return inspect.iscoroutinefunction(fetcher) or inspect.iscoroutinefunction(
        getattr(fetcher, "__call__", None)
    )


@dataclass
class CacheEntry:
    """One cached query result plus its bookkeeping."""
    data: Any = None
    has_data: bool = False
    stale: bool = True
    updated_at: float = 0.0
    generation: int = 0                     # bumped on every invalidation
    inflight: Optional[asyncio.Task] = None
    subscribers: List[Callable] = field(default_factory=list)


@dataclass
class CacheSnapshot:
    """Deep copy of an entry taken before a speculative write."""
    cache: "QueryCache"
    key: Key
    existed: bool
    data: Any

    def restore(self) -> None:
        """Replace the entry with the captured value (no merge)."""
        if self.existed:
            self.cache._store(self.key, copy.deepcopy(self.data))
        else:
            self.cache._forget(self.key)


class QueryCache:
    """In-memory keyed cache with subscribe/invalidate/optimistic-set."""

    def __init__(self):
        self._entries: Dict[Key, CacheEntry] = {}

    def _entry(self, key: Key) -> CacheEntry:
        key = tuple(key)
        if key not in self._entries:
            self._entries[key] = CacheEntry()
        return self._entries[key]

    def _notify(self, key: Key, event: str) -> None:
        entry = self._entries.get(tuple(key))
        if not entry:
            return
        for callback in list(entry.subscribers):
            try:
                callback(key, event)
            except Exception as e:
                logger.error(f"Cache subscriber for {key} failed on {event}: {e}")

    def _store(self, key: Key, data: Any, stale: bool = False) -> None:
        entry = self._entry(key)
        entry.data = data
        entry.has_data = True
        entry.stale = stale
        entry.updated_at = time.time()
        self._notify(key, EVENT_UPDATED)

    def _forget(self, key: Key) -> None:
        entry = self._entry(key)
        entry.data = None
        entry.has_data = False
        entry.stale = True
        self._notify(key, EVENT_UPDATED)

    # ── Reads ────────────────────────────────────────────────────────────────

    def get_query_data(self, key: Key) -> Any:
        entry = self._entries.get(tuple(key))
        return entry.data if entry and entry.has_data else None

    def is_stale(self, key: Key) -> bool:
        entry = self._entries.get(tuple(key))
        return entry is None or entry.stale

    def is_fetching(self, key: Key) -> bool:
        entry = self._entries.get(tuple(key))
        return bool(entry and entry.inflight and not entry.inflight.done())

    async def fetch_query(self, key: Key, fetcher: Callable, force: bool = False) -> Any:
        """
        Return fresh cached data, or run ``fetcher`` and cache its result.

        Concurrent reads of one key share a single fetch. If that fetch is
        cancelled (see cancel_queries) the caller gets whatever the cache
        holds at that moment, typically the optimistic value. Fetch errors
        propagate to every waiter.
        """
        key = tuple(key)
        entry = self._entry(key)
        if entry.has_data and not entry.stale and not force:
            return entry.data

        if entry.inflight is None or entry.inflight.done():
            entry.inflight = asyncio.ensure_future(self._run_fetch(key, fetcher, entry.generation))
        task = entry.inflight

        # wait() does not cancel the shared fetch if this waiter is cancelled
        await asyncio.wait({task})
        if task.cancelled():
            logger.debug(f"Read of {key} was cancelled; serving cached value")
            return self.get_query_data(key)
        return task.result()

    async def _run_fetch(self, key: Key, fetcher: Callable, generation: int) -> Any:
        entry = self._entries[key]
        try:
            if _is_async(fetcher):
                data = await fetcher()
            else:
                data = await asyncio.to_thread(fetcher)
                # Plain callables may still hand back a coroutine
                if inspect.isawaitable(data):
                    data = await data
            # Invalidated while in flight: keep the data but leave it stale
            self._store(key, data, stale=entry.generation != generation)
            logger.debug(f"Fetched {key}")
            return data
        finally:
            if entry.inflight is asyncio.current_task():
                entry.inflight = None

    def cancel_inflight(self, prefix: Key) -> List[asyncio.Task]:
        """
        Request cancellation of in-flight reads under ``prefix`` without
        waiting. Returns the cancelled tasks; their waiters wake only after
        the caller next yields, so a write made before then is what they see.
        """
        pending = []
        for key, entry in self._entries.items():
            if _matches(key, prefix) and entry.inflight and not entry.inflight.done():
                entry.inflight.cancel()
                pending.append(entry.inflight)
                logger.debug(f"Cancelled in-flight read of {key}")
        return pending

    async def cancel_queries(self, prefix: Key) -> None:
        """Cancel in-flight reads for every key under ``prefix`` and wait for them."""
        pending = self.cancel_inflight(prefix)
        if pending:
            await asyncio.wait(pending)

    # ── Writes ───────────────────────────────────────────────────────────────

    def set_query_data(self, key: Key, value: Any) -> Any:
        """
        Write an entry directly. ``value`` may be a function of the current
        data (None when absent) returning the new data.
        """
        if callable(value):
            value = value(self.get_query_data(key))
        self._store(key, value)
        return value

    def invalidate_queries(self, prefix: Key) -> List[Key]:
        """Mark every entry under ``prefix`` stale so the next read refetches."""
        hit = []
        for key, entry in list(self._entries.items()):
            if _matches(key, prefix):
                entry.stale = True
                entry.generation += 1
                hit.append(key)
        for key in hit:
            self._notify(key, EVENT_INVALIDATED)
        if hit:
            logger.debug(f"Invalidated {len(hit)} queries under {tuple(prefix)}")
        return hit

    def remove_queries(self, prefix: Key) -> None:
        """Drop every entry under ``prefix``, cancelling its in-flight read."""
        for key in list(self._entries):
            if _matches(key, prefix):
                self._notify(key, EVENT_REMOVED)
                entry = self._entries.pop(key)
                if entry.inflight and not entry.inflight.done():
                    entry.inflight.cancel()

    def snapshot(self, key: Key) -> CacheSnapshot:
        entry = self._entries.get(tuple(key))
        existed = bool(entry and entry.has_data)
        return CacheSnapshot(
            cache=self,
            key=tuple(key),
            existed=existed,
            data=copy.deepcopy(entry.data) if existed else None,
        )

    # ── Observers ────────────────────────────────────────────────────────────

    def subscribe(self, key: Key, callback: Callable) -> Callable[[], None]:
        """Call ``callback(key, event)`` on changes to ``key``; returns an unsubscriber."""
        entry = self._entry(key)
        entry.subscribers.append(callback)

        def unsubscribe():
            if callback in entry.subscribers:
                entry.subscribers.remove(callback)
        return unsubscribe

    def clear(self) -> None:
        self.remove_queries(())
