"""Tests for settings and dependency wiring."""

import pytest

from codecite.config.settings import Settings
from codecite.container import Container, configure_container
from codecite.core.protocols.llm import GenerationBackendProtocol
from codecite.core.protocols.reranker import RerankerProtocol
from codecite.core.services.chat_service import ChatService
from codecite.core.services.search_service import SearchService
from codecite.infrastructure.cache.embedding_cache import EmbeddingCache
from codecite.infrastructure.llm.openai_backend import OpenAICompatibleBackend
from codecite.infrastructure.rerankers.heuristic import HeuristicReranker

from conftest import make_chunk


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.rerank_enabled is True
        assert settings.answer_sufficiency_threshold == 0.1
        assert settings.cache_max_entries == 10000

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CODECITE_RERANK_WEIGHT", "0.5")
        monkeypatch.setenv("CODECITE_CACHE_ENABLED", "false")

        settings = Settings(_env_file=None)

        assert settings.rerank_weight == 0.5
        assert settings.cache_enabled is False


class TestContainer:
    def test_missing_factory_raises(self):
        with pytest.raises(KeyError):
            Container().resolve(ChatService)

    def test_singletons_and_reset(self):
        container = Container()
        container.register(list, list, singleton=True)

        first = container.resolve(list)
        assert container.resolve(list) is first

        container.reset()
        assert container.resolve(list) is not first

    def test_configure_wires_services(self, tmp_path):
        container = configure_container(Settings(_env_file=None, cache_dir=str(tmp_path)))

        chat = container.resolve(ChatService)
        search = container.resolve(SearchService)

        assert container.resolve(ChatService) is chat
        assert search.reranking_enabled is True
        assert isinstance(container.resolve(RerankerProtocol), HeuristicReranker)
        assert isinstance(container.resolve(GenerationBackendProtocol), OpenAICompatibleBackend)
        assert isinstance(container.resolve(EmbeddingCache), EmbeddingCache)

    def test_configure_respects_disabled_features(self, tmp_path):
        settings = Settings(
            _env_file=None,
            cache_dir=str(tmp_path),
            rerank_enabled=False,
            rerank_original_weight=1.0,
            rerank_weight=1.0,
        )
        container = configure_container(settings)

        assert container.resolve(SearchService).reranking_enabled is False
        assert container.resolve(RerankerProtocol).weights == (0.5, 0.5)

    def test_each_call_returns_fresh_container(self, tmp_path):
        settings = Settings(_env_file=None, cache_dir=str(tmp_path))
        assert configure_container(settings) is not configure_container(settings)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_cache_flushed_after_rebuild_and_close(self, tmp_path):
        container = configure_container(Settings(_env_file=None, cache_dir=str(tmp_path)))
        search = container.resolve(SearchService)
        cache = container.resolve(EmbeddingCache)
        chunks = [make_chunk(f"src/mod{i}.ts", f"export const value{i} = {i};") for i in range(10)]

        async with search:
            assert cache.maintenance_running
            search.add_chunks(chunks)
            await search.rebuild_indexes()

            assert cache.path.exists()
            assert not cache.is_dirty
            cache.get(chunks[0].content)

        assert not cache.maintenance_running
        assert not cache.is_dirty
        assert len(EmbeddingCache(str(tmp_path))) == 10

    @pytest.mark.asyncio
    async def test_close_without_cache(self):
        search = SearchService()

        search.start()
        await search.close()

        assert search.chunk_count == 0
