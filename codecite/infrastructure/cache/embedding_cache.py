import asyncio
import contextlib
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

from codecite.core.errors import CacheError
from codecite.core.models.cache import CacheEntry, CacheStats
from codecite.core.models.document import content_hash

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "embeddings.cache.json"
DAY_SECONDS = 24 * 60 * 60
WEEK_SECONDS = 7 * DAY_SECONDS
EVICTION_FRACTION = 0.2


class EmbeddingCache:
    """Content-hash keyed vector cache persisted as JSON.

    Single-writer: reads and writes are synchronous and a dirty flag, not a
    lock, decides whether a flush is needed. The cache is never authoritative;
    losing it only costs recomputation.
    """

    def __init__(
        self,
        cache_dir: str,
        max_entries: int = 10000,
        ttl_seconds: float = WEEK_SECONDS,
        flush_every: int = 100,
        flush_interval: float = 300.0,
        cleanup_interval: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache and load the persisted file.

        Args:
            cache_dir: Directory holding the cache file.
            max_entries: Hard cap on entry count.
            ttl_seconds: Entry lifetime measured from creation.
            flush_every: Persist after this many writes.
            flush_interval: Seconds between timed flushes.
            cleanup_interval: Seconds between expired-entry sweeps.
            clock: Time source in seconds.
        """
        self._cache_dir = Path(cache_dir)
        self._cache_file = self._cache_dir / CACHE_FILE_NAME
        self._max_entries = max(1, max_entries)
        self._ttl = ttl_seconds
        self._flush_every = max(1, flush_every)
        self._flush_interval = flush_interval
        self._cleanup_interval = cleanup_interval
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._dirty = False
        self._writes_since_flush = 0
        self._maintenance_task: Optional[asyncio.Task] = None

        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    @property
    def path(self) -> Path:
        return self._cache_file

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def maintenance_running(self) -> bool:
        return self._maintenance_task is not None and not self._maintenance_task.done()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.created_at > self._ttl

    def _mark_written(self) -> None:
        self._dirty = True
        self._writes_since_flush += 1
        if self._writes_since_flush >= self._flush_every:
            self.persist()

    def get(self, content: str) -> Optional[list[float]]:
        key = content_hash(content)
        entry = self._entries.get(key)

        if entry is None:
            self._misses += 1
            return None

        if self._is_expired(entry):
            del self._entries[key]
            self._dirty = True
            self._misses += 1
            return None

        entry.access_count += 1
        entry.last_access = self._clock()
        self._hits += 1
        self._dirty = True
        return entry.vector

    def set(self, content: str, vector: list[float]) -> None:
        key = content_hash(content)
        now = self._clock()
        self._entries[key] = CacheEntry(
            vector=list(vector),
            hash=key,
            created_at=now,
            access_count=1,
            last_access=now,
        )

        if len(self._entries) > self._max_entries:
            self._evict_least_recently_used()

        self._mark_written()

    def peek(self, content: str) -> Optional[CacheEntry]:
        """Entry for content without touching access stats or expiry."""
        return self._entries.get(content_hash(content))

    def has(self, content: str) -> bool:
        entry = self._entries.get(content_hash(content))
        return entry is not None and not self._is_expired(entry)

    def delete(self, content: str) -> bool:
        removed = self._entries.pop(content_hash(content), None) is not None
        if removed:
            self._mark_written()
        return removed

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._dirty = True
        self.persist()

    def _evict_least_recently_used(self) -> None:
        to_remove = max(1, int(self._max_entries * EVICTION_FRACTION))
        oldest = sorted(self._entries.items(), key=lambda item: item[1].last_access)
        for key, _ in oldest[:to_remove]:
            del self._entries[key]
        self._dirty = True
        logger.info(f"Cache eviction: removed {min(to_remove, len(oldest))} LRU entries")

    def cleanup_expired(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed.
        """
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        if expired:
            self._dirty = True
            logger.info(f"Cache cleanup: removed {len(expired)} expired entries")
        return len(expired)

    def optimize(self) -> int:
        """Prune rarely used entries untouched for a week.

        An entry goes when its access count is at or below the 25th
        percentile and its last access is older than seven days.

        Returns:
            Number of entries removed.
        """
        if not self._entries:
            return 0

        counts = sorted(entry.access_count for entry in self._entries.values())
        threshold = counts[int(len(counts) * 0.25)] or 1
        week_ago = self._clock() - WEEK_SECONDS

        stale = [
            key
            for key, entry in self._entries.items()
            if entry.access_count <= threshold and entry.last_access < week_ago
        ]
        for key in stale:
            del self._entries[key]

        if stale:
            self._dirty = True
            logger.info(f"Cache optimized: removed {len(stale)} rarely used entries")
        return len(stale)

    def get_stats(self) -> CacheStats:
        entries = list(self._entries.values())
        lookups = self._hits + self._misses
        return CacheStats(
            total_entries=len(entries),
            hits=self._hits,
            misses=self._misses,
            hit_rate=(self._hits / lookups * 100) if lookups else 0.0,
            cache_size=sum(len(e.vector) * 8 + 100 for e in entries),
            oldest_entry=min((e.created_at for e in entries), default=0.0),
            newest_entry=max((e.created_at for e in entries), default=0.0),
        )

    def persist(self) -> bool:
        """Write the cache file if anything changed since the last flush."""
        if not self._dirty:
            return False

        data = {
            "entries": [[key, entry.to_dict()] for key, entry in self._entries.items()],
            "stats": {"hits": self._hits, "misses": self._misses},
            "saved_at": self._clock(),
        }

        tmp_path = None
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self._cache_dir, prefix=".embeddings.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self._cache_file)
        except OSError as e:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
            logger.warning(f"Failed to persist embedding cache: {e}")
            return False

        self._dirty = False
        self._writes_since_flush = 0
        logger.debug(f"Embedding cache persisted: {len(self._entries)} entries")
        return True

    def _read_file(self) -> dict:
        try:
            with open(self._cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheError(
                f"Unreadable cache file: {self._cache_file}", {"error": str(e)}
            ) from e
        if not isinstance(data, dict):
            raise CacheError(f"Unexpected cache layout in {self._cache_file}")
        return data

    def _load(self) -> None:
        if not self._cache_file.exists():
            return

        try:
            data = self._read_file()
            entries = {
                str(key): CacheEntry.from_dict(raw)
                for key, raw in data.get("entries", [])
            }
            stats = data.get("stats") or {}
            hits = int(stats.get("hits", 0))
            misses = int(stats.get("misses", 0))
        except CacheError as e:
            logger.warning(f"{e.message}, starting with an empty cache")
            return
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Corrupt embedding cache ({e}), starting with an empty cache")
            return

        self._entries = entries
        self._hits = hits
        self._misses = misses
        self.cleanup_expired()
        logger.info(f"Embedding cache loaded: {len(self._entries)} entries")

    async def _maintenance_loop(self) -> None:
        last_cleanup = self._clock()
        while True:
            await asyncio.sleep(self._flush_interval)
            if self._clock() - last_cleanup >= self._cleanup_interval:
                self.cleanup_expired()
                last_cleanup = self._clock()
            self.persist()

    def start_maintenance(self) -> None:
        """Start timed flushes and cleanup on the running event loop."""
        if self._maintenance_task is None or self._maintenance_task.done():
            self._maintenance_task = asyncio.get_running_loop().create_task(
                self._maintenance_loop()
            )

    async def shutdown(self) -> None:
        """Stop maintenance and flush pending changes."""
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._maintenance_task
            self._maintenance_task = None
        self.persist()
