"""Tests for the hybrid search service."""

import asyncio

import pytest

from codecite.core.errors import RetrievalError
from codecite.core.models.document import SearchFilters, SearchQuery
from codecite.core.services.search_service import SearchService
from codecite.infrastructure.cache.embedding_cache import EmbeddingCache
from codecite.infrastructure.rerankers.heuristic import HeuristicReranker

from conftest import make_chunk


class ExplodingReranker:
    def rerank(self, query, results, top_k=20):
        raise ValueError("reranker offline")


class TestIndexing:
    @pytest.mark.asyncio
    async def test_search_before_rebuild_is_empty(self, code_corpus):
        service = SearchService()
        service.add_chunks(code_corpus)

        assert service.search(SearchQuery("useApi")) == []

    @pytest.mark.asyncio
    async def test_rebuild_reports_progress(self, code_corpus):
        service = SearchService(batch_size=2)
        service.add_chunks(code_corpus)
        statuses = []

        await service.rebuild_indexes(statuses.append)

        assert statuses == [
            "Building lexical index...",
            "Building vector index...",
            "Indexes built",
        ]
        assert service.get_stats()["indexed_chunks"] == 5

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_abort(self, code_corpus):
        def broken(status):
            raise RuntimeError("ui gone")

        service = SearchService()
        service.add_chunks(code_corpus)

        await service.rebuild_indexes(broken)

        assert service.get_stats()["indexed_chunks"] == 5

    def test_invalid_chunks_are_skipped(self):
        service = SearchService(max_chunk_chars=20)

        accepted = service.add_chunks([
            make_chunk("a.ts", "short body"),
            make_chunk("b.ts", "x" * 21),
            {"content": "not a chunk"},
        ])

        assert accepted == 1
        assert service.chunk_count == 1

    def test_duplicate_id_replaces_chunk(self):
        service = SearchService()

        service.add_chunks([make_chunk("a.ts", "first version")])
        service.add_chunks([make_chunk("a.ts", "second version")])

        assert service.chunk_count == 1
        assert service.export_data()["chunks"][0]["content"] == "second version"

    @pytest.mark.asyncio
    async def test_concurrent_rebuilds_serialize(self, code_corpus):
        service = SearchService(reranker=HeuristicReranker(), batch_size=1)
        service.add_chunks(code_corpus)

        await asyncio.gather(service.rebuild_indexes(), service.rebuild_indexes())

        results = service.search(SearchQuery("useApi hook"), 5)
        assert results[0].chunk.file_path == "src/hooks/useApi.ts"

    @pytest.mark.asyncio
    async def test_cache_is_filled_during_rebuild(self, code_corpus, tmp_path):
        cache = EmbeddingCache(str(tmp_path))
        service = SearchService(cache=cache)
        service.add_chunks(code_corpus)

        await service.rebuild_indexes()
        await service.rebuild_indexes()

        assert len(cache) == 5
        assert cache.get_stats().hits == 5


class TestSearch:
    @pytest.mark.asyncio
    async def test_finds_hook_first(self, search_service):
        results = search_service.search(SearchQuery("useApi hook"), 5)

        assert results[0].chunk.id == "src/hooks/useApi.ts:1-20"
        assert results[0].score > 0.1
        assert results[0].rerank_score is not None

    @pytest.mark.asyncio
    async def test_limit_and_score_bounds(self, search_service):
        results = search_service.search(SearchQuery("export function return"), 2)

        assert len(results) <= 2
        assert all(0.0 <= r.score <= 1.0 for r in results)

    @pytest.mark.asyncio
    async def test_filters_apply(self, search_service):
        query = SearchQuery("dashboards analytics", filters=SearchFilters(language="markdown"))

        results = search_service.search(query, 5)

        assert [r.chunk.file_path for r in results] == ["docs/README.md"]

    @pytest.mark.asyncio
    async def test_filters_exclude_everything(self, search_service):
        query = SearchQuery("useApi", filters=SearchFilters(types=["test"]))
        assert search_service.search(query, 5) == []

    @pytest.mark.asyncio
    async def test_mapping_filters_are_parsed(self, search_service):
        query = SearchQuery("dashboards analytics", filters={"language": "markdown"})

        results = search_service.search(query, 5)

        assert [r.chunk.file_path for r in results] == ["docs/README.md"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("filters", [{"language": 42}, {"types": [1]}, ["hook"]])
    async def test_malformed_filters_fall_back_to_none(self, search_service, filters):
        unfiltered = search_service.search(SearchQuery("useApi hook"), 5)

        results = search_service.search(SearchQuery("useApi hook", filters=filters), 5)

        assert [r.chunk.id for r in results] == [r.chunk.id for r in unfiltered]

    @pytest.mark.asyncio
    async def test_query_without_terms_is_empty(self, search_service):
        assert search_service.search(SearchQuery("is it on?"), 5) == []

    @pytest.mark.asyncio
    async def test_without_reranker_scores_are_rank_fusion(self, code_corpus):
        service = SearchService()
        service.add_chunks(code_corpus)
        await service.rebuild_indexes()

        results = service.search(SearchQuery("useApi hook"), 3)

        assert 0 < len(results) <= 3
        assert all(r.score <= 2 / 61 + 1e-9 for r in results)
        assert results[0].chunk.file_path == "src/hooks/useApi.ts"
        assert service.reranking_enabled is False

    @pytest.mark.asyncio
    async def test_repeated_search_is_stable(self, search_service):
        first = search_service.search(SearchQuery("router users"), 5)
        second = search_service.search(SearchQuery("router users"), 5)

        assert [r.chunk.id for r in first] == [r.chunk.id for r in second]
        assert [r.score for r in first] == [r.score for r in second]

    @pytest.mark.asyncio
    async def test_stage_failure_raises_retrieval_error(self, code_corpus):
        service = SearchService(reranker=ExplodingReranker())
        service.add_chunks(code_corpus)
        await service.rebuild_indexes()

        with pytest.raises(RetrievalError):
            service.search(SearchQuery("useApi"), 5)


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_export_then_load(self, search_service):
        snapshot = search_service.export_data()
        restored = SearchService(reranker=HeuristicReranker())

        await restored.load_data(snapshot)

        assert restored.get_stats() == search_service.get_stats()
        assert snapshot["stats"]["languages"] == {"typescript": 4, "markdown": 1}
        original = search_service.search(SearchQuery("useApi hook"), 3)
        reloaded = restored.search(SearchQuery("useApi hook"), 3)
        assert [r.chunk.id for r in reloaded] == [r.chunk.id for r in original]

    @pytest.mark.asyncio
    async def test_load_replaces_chunk_set(self, search_service, code_corpus):
        readme = [c for c in code_corpus if c.file_path == "docs/README.md"]

        await search_service.load_data({"chunks": [c.to_dict() for c in readme]})

        assert search_service.chunk_count == 1
        assert search_service.search(SearchQuery("useApi"), 5) == []

    @pytest.mark.asyncio
    async def test_unreadable_snapshot_entries_skipped(self):
        service = SearchService()

        await service.load_data({"chunks": [{"id": "broken"}]})

        assert service.chunk_count == 0
