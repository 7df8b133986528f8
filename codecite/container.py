import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_flags: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Args:
            interface: Interface type.
            factory: Factory function.
            singleton: Whether to cache instance.
        """
        self._factories[interface] = factory
        if singleton:
            self._singleton_flags.add(interface)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        if interface not in self._factories:
            raise KeyError(f"No factory registered for {interface}")

        instance = self._factories[interface]()

        if interface in self._singleton_flags:
            self._singletons[interface] = instance

        return instance

    def reset(self) -> None:
        """Reset singletons (for testing)."""
        self._singletons.clear()


def configure_container(settings: Optional[Settings] = None) -> Container:
    """Build a container with all dependencies.

    Each call returns a fresh container; callers pass it explicitly rather
    than sharing module-level state.

    Args:
        settings: Application settings. Defaults to environment-derived settings.

    Returns:
        Configured container.
    """
    from .core.protocols.llm import GenerationBackendProtocol
    from .core.protocols.reranker import RerankerProtocol
    from .core.services.chat_service import ChatService
    from .core.services.intent_service import IntentClassifier
    from .core.services.search_service import SearchService
    from .infrastructure.cache.embedding_cache import EmbeddingCache
    from .infrastructure.llm.openai_backend import OpenAICompatibleBackend
    from .infrastructure.rerankers.heuristic import HeuristicReranker

    settings = settings or Settings()
    container = Container()

    container.register(
        EmbeddingCache,
        lambda: EmbeddingCache(
            cache_dir=settings.cache_dir,
            max_entries=settings.cache_max_entries,
            ttl_seconds=settings.cache_ttl_seconds,
            flush_every=settings.cache_flush_every,
            flush_interval=settings.cache_flush_interval,
            cleanup_interval=settings.cache_cleanup_interval,
        ),
        singleton=True,
    )

    container.register(
        RerankerProtocol,
        lambda: HeuristicReranker(
            original_weight=settings.rerank_original_weight,
            rerank_weight=settings.rerank_weight,
        ),
        singleton=True,
    )

    container.register(
        IntentClassifier,
        lambda: IntentClassifier(debug=settings.intent_debug),
        singleton=True,
    )

    container.register(
        GenerationBackendProtocol,
        lambda: OpenAICompatibleBackend(
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        ),
        singleton=True,
    )

    container.register(
        SearchService,
        lambda: SearchService(
            reranker=(
                container.resolve(RerankerProtocol) if settings.rerank_enabled else None
            ),
            cache=container.resolve(EmbeddingCache) if settings.cache_enabled else None,
            batch_size=settings.index_batch_size,
            max_chunk_chars=settings.max_chunk_chars,
            rerank_overfetch=settings.rerank_overfetch,
            rerank_max_candidates=settings.rerank_max_candidates,
        ),
        singleton=True,
    )

    container.register(
        ChatService,
        lambda: ChatService(
            llm=container.resolve(GenerationBackendProtocol),
            search_service=container.resolve(SearchService),
            classifier=container.resolve(IntentClassifier),
            max_context_results=settings.answer_max_context,
            per_query_limit=settings.answer_per_query_limit,
            sufficiency_threshold=settings.answer_sufficiency_threshold,
            no_response_threshold=settings.answer_no_response_threshold,
            history_turns=settings.answer_history_turns,
            use_intent_filters=settings.answer_intent_filters,
        ),
        singleton=True,
    )

    logger.info("Container configured")
    return container
