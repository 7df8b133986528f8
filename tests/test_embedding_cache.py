"""Tests for the persistent embedding cache."""

import json

import pytest

from codecite.core.models.document import content_hash
from codecite.infrastructure.cache.embedding_cache import (
    CACHE_FILE_NAME,
    DAY_SECONDS,
    WEEK_SECONDS,
    EmbeddingCache,
)


@pytest.fixture
def cache(tmp_path, clock):
    return EmbeddingCache(str(tmp_path), max_entries=10, clock=clock)


class TestLookup:
    def test_set_then_get(self, cache):
        cache.set("def parse(): pass", [0.1, 0.2])

        assert cache.get("def parse(): pass") == [0.1, 0.2]
        assert cache.has("def parse(): pass")

    def test_miss_counts(self, cache):
        assert cache.get("nothing here") is None

        stats = cache.get_stats()
        assert stats.misses == 1
        assert stats.hits == 0

    def test_key_ignores_line_endings_and_outer_whitespace(self, cache):
        cache.set("line one\r\nline two\n", [1.0])

        assert cache.get("  line one\nline two") == [1.0]

    def test_get_updates_access_tracking(self, cache, clock):
        cache.set("body", [1.0])
        clock.advance(30)

        cache.get("body")

        entry = cache.peek("body")
        assert entry.access_count == 2
        assert entry.last_access == clock.now

    def test_delete(self, cache):
        cache.set("body", [1.0])

        assert cache.delete("body") is True
        assert cache.delete("body") is False
        assert not cache.has("body")

    def test_clear_resets_stats(self, cache):
        cache.set("body", [1.0])
        cache.get("body")

        cache.clear()

        stats = cache.get_stats()
        assert len(cache) == 0
        assert stats.hits == 0 and stats.misses == 0

    def test_stats_hit_rate(self, cache):
        cache.set("body", [1.0, 2.0])
        cache.get("body")
        cache.get("other")

        stats = cache.get_stats()
        assert stats.total_entries == 1
        assert stats.hit_rate == pytest.approx(50.0)
        assert stats.cache_size == 2 * 8 + 100


class TestExpiry:
    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("body", [1.0])
        clock.advance(WEEK_SECONDS + 1)

        assert not cache.has("body")
        assert cache.get("body") is None
        assert len(cache) == 0

    def test_cleanup_expired(self, cache, clock):
        cache.set("old", [1.0])
        clock.advance(WEEK_SECONDS - 10)
        cache.set("new", [2.0])
        clock.advance(20)

        assert cache.cleanup_expired() == 1
        assert cache.has("new")
        assert not cache.has("old")


class TestCapacity:
    def test_never_exceeds_max_entries(self, cache, clock):
        for i in range(25):
            cache.set(f"content {i}", [float(i)])
            clock.advance(1)
            assert len(cache) <= 10

    def test_evicts_least_recently_used_first(self, cache, clock):
        for i in range(10):
            cache.set(f"content {i}", [float(i)])
            clock.advance(1)
        cache.get("content 0")
        cache.get("content 1")
        clock.advance(1)

        cache.set("content 10", [10.0])

        assert len(cache) == 9
        assert cache.has("content 0")
        assert cache.has("content 1")
        assert not cache.has("content 2")
        assert not cache.has("content 3")
        assert cache.has("content 10")


class TestPersistence:
    def test_persist_and_reload_keeps_entries_and_counters(self, tmp_path, clock):
        cache = EmbeddingCache(str(tmp_path), clock=clock)
        cache.set("alpha", [1.0, 2.0])
        cache.set("beta", [3.0])
        clock.advance(5)
        cache.get("alpha")
        cache.get("alpha")
        cache.get("missing")

        assert cache.persist() is True

        reloaded = EmbeddingCache(str(tmp_path), clock=clock)
        assert len(reloaded) == 2
        assert reloaded.peek("alpha").access_count == 3
        assert reloaded.peek("alpha").last_access == clock.now
        assert reloaded.peek("beta").access_count == 1
        stats = reloaded.get_stats()
        assert stats.hits == 2
        assert stats.misses == 1

    def test_file_layout(self, tmp_path, clock):
        cache = EmbeddingCache(str(tmp_path), clock=clock)
        cache.set("alpha", [1.0])
        cache.persist()

        data = json.loads((tmp_path / CACHE_FILE_NAME).read_text())

        assert data["entries"][0][0] == content_hash("alpha")
        assert data["entries"][0][1]["vector"] == [1.0]
        assert data["stats"] == {"hits": 0, "misses": 0}
        assert data["saved_at"] == clock.now

    def test_persist_only_when_dirty(self, cache):
        cache.set("alpha", [1.0])

        assert cache.persist() is True
        assert cache.is_dirty is False
        assert cache.persist() is False

    def test_flushes_after_write_count(self, tmp_path, clock):
        cache = EmbeddingCache(str(tmp_path), flush_every=2, clock=clock)

        cache.set("one", [1.0])
        assert not cache.path.exists()

        cache.set("two", [2.0])
        assert cache.path.exists()
        assert cache.is_dirty is False

    def test_expired_entries_dropped_on_load(self, tmp_path, clock):
        cache = EmbeddingCache(str(tmp_path), clock=clock)
        cache.set("alpha", [1.0])
        cache.persist()
        clock.advance(8 * DAY_SECONDS)

        reloaded = EmbeddingCache(str(tmp_path), clock=clock)

        assert len(reloaded) == 0

    @pytest.mark.parametrize("payload", ["{not json", "[1, 2, 3]", '{"entries": [["k"]]}'])
    def test_corrupt_file_starts_empty(self, tmp_path, clock, payload):
        (tmp_path / CACHE_FILE_NAME).write_text(payload)

        cache = EmbeddingCache(str(tmp_path), clock=clock)

        assert len(cache) == 0
        cache.set("alpha", [1.0])
        assert cache.get("alpha") == [1.0]

    def test_missing_directory_is_created(self, tmp_path, clock):
        target = tmp_path / "nested" / "cache"

        cache = EmbeddingCache(str(target), clock=clock)
        cache.set("alpha", [1.0])
        cache.persist()

        assert (target / CACHE_FILE_NAME).exists()


class TestOptimize:
    def test_removes_rarely_used_stale_entries(self, tmp_path, clock):
        cache = EmbeddingCache(str(tmp_path), ttl_seconds=30 * DAY_SECONDS, clock=clock)
        for name in ("cold-a", "cold-b", "warm", "hot"):
            cache.set(name, [1.0])
        for _ in range(3):
            cache.get("warm")
        clock.advance(8 * DAY_SECONDS)
        for _ in range(5):
            cache.get("hot")

        removed = cache.optimize()

        assert removed == 2
        assert cache.has("warm")
        assert cache.has("hot")
        assert not cache.has("cold-a")

    def test_recent_entries_survive(self, cache):
        cache.set("fresh", [1.0])
        assert cache.optimize() == 0
        assert cache.has("fresh")

    def test_empty_cache(self, cache):
        assert cache.optimize() == 0


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_shutdown_flushes_pending_writes(self, tmp_path, clock):
        cache = EmbeddingCache(str(tmp_path), flush_interval=3600, clock=clock)
        cache.start_maintenance()
        cache.set("alpha", [1.0])

        await cache.shutdown()

        assert cache.path.exists()
        assert EmbeddingCache(str(tmp_path), clock=clock).get("alpha") == [1.0]
