"""Keyed cache of fetched API data with staleness and invalidation."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

CacheKey = tuple[object, ...]
Fetcher = Callable[[], Awaitable[object]]

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class _CacheEntry:
    key: CacheKey
    value: object = None
    has_value: bool = False
    fetched_at: datetime | None = None
    stale_time: timedelta = timedelta(0)
    invalidated: bool = False
    generation: int = 0
    in_flight: "asyncio.Task[object] | None" = None

    def is_stale(self, now: datetime) -> bool:
        if not self.has_value or self.invalidated or self.fetched_at is None:
            return True
        return now - self.fetched_at > self.stale_time


@dataclass(frozen=True)
class CacheRead:
    """Snapshot returned by a cache read.

    ``value`` is what can be shown right away: the fresh value, the previous
    value of a stale entry, or the caller's placeholder when the key has never
    been fetched. ``pending`` is the shared refetch, if one is running.
    """

    key: CacheKey
    value: object | None
    is_stale: bool
    is_placeholder: bool = False
    pending: "asyncio.Task[object] | None" = None

    @property
    def is_fetching(self) -> bool:
        """Return whether a refetch for this key is still running."""
        return self.pending is not None and not self.pending.done()

    async def result(self) -> object:
        """Return the fresh value, waiting for the refetch when one is pending.

        Fetch failures propagate here; the cached value stays untouched.
        """
        if self.pending is None:
            return self.value
        return await asyncio.shield(self.pending)


@dataclass
class CacheCoordinator:
    """Cache with per-key request deduplication and generation-checked writes."""

    default_stale_time: timedelta = timedelta(minutes=5)
    clock: Callable[[], datetime] = _utcnow
    _entries: dict[CacheKey, _CacheEntry] = field(default_factory=dict, init=False)

    def read(
        self,
        key: CacheKey,
        stale_time: timedelta | None,
        fetcher: Fetcher,
        *,
        placeholder: object | None = None,
    ) -> CacheRead:
        """Return cached data for ``key``, starting a refetch if it is stale.

        Must be called from a running event loop. A read while a fetch is in
        flight attaches to that fetch instead of issuing another one.
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = _CacheEntry(key=key)
            self._entries[key] = entry
        entry.stale_time = (
            stale_time if stale_time is not None else self.default_stale_time
        )

        if not entry.is_stale(self.clock()):
            return CacheRead(key=key, value=entry.value, is_stale=False)

        task = entry.in_flight or self._start_fetch(entry, fetcher)
        if entry.has_value:
            return CacheRead(key=key, value=entry.value, is_stale=True, pending=task)
        return CacheRead(
            key=key,
            value=placeholder,
            is_stale=True,
            is_placeholder=placeholder is not None,
            pending=task,
        )

    async def fetch(
        self, key: CacheKey, stale_time: timedelta | None, fetcher: Fetcher
    ) -> object:
        """Read ``key`` and wait until a fresh value is available."""
        return await self.read(key, stale_time, fetcher).result()

    def peek(self, key: CacheKey) -> object | None:
        """Return the stored value without triggering a fetch."""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return None
        return entry.value

    def is_stale(self, key: CacheKey) -> bool:
        """Return whether the next read of ``key`` would refetch."""
        entry = self._entries.get(key)
        return entry is None or entry.is_stale(self.clock())

    def invalidate(self, prefixes: Iterable[CacheKey]) -> int:
        """Mark every key starting with one of ``prefixes`` as stale.

        In-flight fetches for those keys are detached; their results are
        dropped on arrival so the next read fetches again.
        """
        prefix_list = [tuple(prefix) for prefix in prefixes]
        count = 0
        for key, entry in self._entries.items():
            if any(key[: len(prefix)] == prefix for prefix in prefix_list):
                entry.invalidated = True
                entry.generation += 1
                entry.in_flight = None
                count += 1
        if count:
            _logger.debug("Invalidated %s cache entries for %s", count, prefix_list)
        return count

    def clear(self) -> None:
        """Discard every entry; pending results land nowhere."""
        self._entries.clear()
        _logger.debug("Cache cleared")

    def _start_fetch(self, entry: _CacheEntry, fetcher: Fetcher) -> "asyncio.Task[object]":
        generation = entry.generation

        async def run() -> object:
            try:
                value = await fetcher()
            finally:
                if entry.in_flight is asyncio.current_task():
                    entry.in_flight = None
            if self._entries.get(entry.key) is not entry or entry.generation != generation:
                _logger.debug("Dropping superseded result for %s", entry.key)
                return value
            entry.value = value
            entry.has_value = True
            entry.fetched_at = self.clock()
            entry.invalidated = False
            return value

        task = asyncio.get_running_loop().create_task(run())
        task.add_done_callback(_log_fetch_failure(entry.key))
        entry.in_flight = task
        _logger.debug("Fetching %s", entry.key)
        return task


def _log_fetch_failure(key: CacheKey) -> Callable[["asyncio.Task[object]"], None]:
    def callback(task: "asyncio.Task[object]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning("Fetch for %s failed: %s", key, exc)

    return callback
