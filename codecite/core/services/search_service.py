"""Search service - hybrid lexical/vector retrieval over code chunks."""

import asyncio
import logging
from collections import Counter
from typing import Any, Callable, Iterable, Optional

from ..errors import ConfigurationError, IndexingError, RetrievalError
from ..indexes.lexical import LexicalIndex
from ..indexes.tokenizer import tokenize
from ..indexes.vector import VectorIndex
from ..models.document import Chunk, SearchFilters, SearchQuery, SearchResult
from ..protocols.cache import VectorCacheProtocol
from ..protocols.reranker import RerankerProtocol
from ..strategies.diversify import MMRDiversifier
from ..strategies.fusion import apply_filters, reciprocal_rank_fusion

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class SearchService:
    """Hybrid search: BM25 + TF-IDF, fused by RRF, then reranked or diversified."""

    def __init__(
        self,
        reranker: Optional[RerankerProtocol] = None,
        cache: Optional[VectorCacheProtocol] = None,
        batch_size: int = 50,
        max_chunk_chars: int = 200_000,
        rerank_overfetch: int = 3,
        rerank_max_candidates: int = 100,
    ):
        """Initialize search service.

        Args:
            reranker: Reranking service. None disables reranking and enables MMR.
            cache: Vector cache consulted during index builds.
            batch_size: Chunks processed between cooperative yields on rebuild.
            max_chunk_chars: Chunks longer than this are rejected.
            rerank_overfetch: Candidate multiplier when reranking.
            rerank_max_candidates: Cap on over-fetched candidates.
        """
        self._reranker = reranker
        self._cache = cache
        self._batch_size = max(1, batch_size)
        self._max_chunk_chars = max_chunk_chars
        self._rerank_overfetch = rerank_overfetch
        self._rerank_max_candidates = rerank_max_candidates

        self._chunks: dict[str, Chunk] = {}
        self._indexed: dict[str, Chunk] = {}
        self._lexical = LexicalIndex()
        self._vector = VectorIndex(cache)
        self._rebuild_lock = asyncio.Lock()

    @property
    def reranking_enabled(self) -> bool:
        return self._reranker is not None

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def start(self) -> None:
        """Start timed cache flushes. Must be called from a running event loop."""
        if self._cache is not None:
            self._cache.start_maintenance()
            logger.info("Cache maintenance started")

    async def close(self) -> None:
        """Stop cache maintenance and write pending cache changes."""
        if self._cache is not None:
            await self._cache.shutdown()
            logger.info("Search service closed")

    async def __aenter__(self) -> "SearchService":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _validate(self, chunk: Any) -> Chunk:
        if not isinstance(chunk, Chunk):
            raise IndexingError(f"Not a chunk: {type(chunk).__name__}")
        if not isinstance(chunk.content, str):
            raise IndexingError(f"Unreadable content in {chunk.id}", {"id": chunk.id})
        if len(chunk.content) > self._max_chunk_chars:
            raise IndexingError(
                f"Chunk {chunk.id} exceeds {self._max_chunk_chars} chars",
                {"id": chunk.id, "size": len(chunk.content)},
            )
        return chunk

    def add_chunks(self, chunks: Iterable[Chunk]) -> int:
        """Queue chunks for the next rebuild.

        A chunk whose id is already known replaces the previous one. Invalid
        chunks are logged and skipped.

        Returns:
            Number of chunks accepted.
        """
        accepted = 0
        for chunk in chunks:
            try:
                valid = self._validate(chunk)
            except IndexingError as e:
                logger.warning(f"Skipping chunk: {e.message}")
                continue
            self._chunks[valid.id] = valid
            accepted += 1

        logger.info(f"Added {accepted} chunks ({len(self._chunks)} total)")
        return accepted

    async def _checkpoint(self, processed: int) -> None:
        if processed % self._batch_size == 0:
            await asyncio.sleep(0)

    async def rebuild_indexes(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        """Rebuild both indexes from the current chunk set.

        New indexes are built on the side and swapped in when complete, so
        concurrent searches see either the old or the new snapshot. Only one
        rebuild runs at a time.
        """
        async with self._rebuild_lock:
            chunks = list(self._chunks.values())
            self._notify(progress_callback, "Building lexical index...")

            token_lists: list[list[str]] = []
            kept: list[Chunk] = []
            for processed, chunk in enumerate(chunks, 1):
                try:
                    token_lists.append(tokenize(chunk.content))
                    kept.append(chunk)
                except Exception as e:
                    logger.warning(f"Skipping chunk {chunk.id} during indexing: {e}")
                await self._checkpoint(processed)

            total = len(kept)
            doc_freq = LexicalIndex.document_frequencies(token_lists)

            lexical = LexicalIndex()
            for processed, (chunk, terms) in enumerate(zip(kept, token_lists), 1):
                lexical.add(chunk.id, terms, doc_freq, total)
                await self._checkpoint(processed)

            self._notify(progress_callback, "Building vector index...")
            vector = VectorIndex(self._cache)
            vector.set_corpus(doc_freq, total)
            for processed, (chunk, terms) in enumerate(zip(kept, token_lists), 1):
                vector.add(chunk, terms)
                await self._checkpoint(processed)
            vector.log_cache_usage()

            self._lexical = lexical
            self._vector = vector
            self._indexed = {chunk.id: chunk for chunk in kept}

            if self._cache is not None:
                self._cache.persist()

            self._notify(progress_callback, "Indexes built")
            logger.info(f"Indexes rebuilt: {total} chunks, {len(doc_freq)} terms")

    @staticmethod
    def _notify(progress_callback: Optional[ProgressCallback], status: str) -> None:
        if progress_callback is None:
            return
        try:
            progress_callback(status)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def _to_results(self, scored: list[tuple[str, float]]) -> list[SearchResult]:
        return [
            SearchResult.for_chunk(self._indexed[chunk_id], score)
            for chunk_id, score in scored
            if chunk_id in self._indexed
        ]

    @staticmethod
    def _resolve_filters(filters: Any) -> Optional[SearchFilters]:
        """Accept SearchFilters or a loose mapping; malformed filters mean none."""
        if filters is None or isinstance(filters, SearchFilters):
            return filters
        try:
            return SearchFilters.from_mapping(filters)
        except ConfigurationError as e:
            logger.warning(f"Ignoring malformed filters: {e.message} {e.details}")
            return None

    def search(self, query: SearchQuery, limit: int = 20) -> list[SearchResult]:
        """Search indexed chunks.

        Args:
            query: Query text, type and optional filters.
            limit: Number of results to return.

        Returns:
            Ranked results. With a reranker, scores are combined scores in
            [0, 1]; otherwise RRF scores, diversified by MMR.

        Raises:
            RetrievalError: If any stage fails.
        """
        lexical, vector, indexed = self._lexical, self._vector, self._indexed
        if not indexed or limit <= 0:
            return []

        filters = self._resolve_filters(query.filters)
        try:
            fetch = (
                min(limit * self._rerank_overfetch, self._rerank_max_candidates)
                if self._reranker is not None
                else limit
            )

            bm25 = self._to_results(lexical.search(query.text, fetch))
            semantic = self._to_results(vector.search(query.text, fetch))
            merged = reciprocal_rank_fusion([bm25, semantic], fetch)
            filtered = apply_filters(merged, filters)

            if self._reranker is not None and filtered:
                results = self._reranker.rerank(query.text, filtered, limit)
            else:
                results = MMRDiversifier(vector.vector_for).diversify(filtered, limit)
        except Exception as e:
            raise RetrievalError(
                f"Search failed for '{query.text[:50]}'", {"error": str(e)}
            ) from e

        logger.debug(
            f"Search: bm25={len(bm25)} vector={len(semantic)} "
            f"merged={len(merged)} filtered={len(filtered)} returned={len(results)}"
        )
        return results

    def get_stats(self) -> dict:
        languages = Counter(chunk.language for chunk in self._chunks.values())
        return {
            "total_chunks": len(self._chunks),
            "indexed_chunks": len(self._indexed),
            "languages": dict(languages),
        }

    def export_data(self) -> dict:
        """Snapshot chunk content and derived stats. Indexes are not exported."""
        return {
            "chunks": [chunk.to_dict() for chunk in self._chunks.values()],
            "stats": self.get_stats(),
        }

    async def load_data(self, data: dict) -> None:
        """Replace the chunk set from a snapshot and rebuild the indexes."""
        chunks = []
        for raw in data.get("chunks") or []:
            try:
                chunks.append(Chunk.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable chunk in snapshot: {e}")

        self._chunks = {}
        self.add_chunks(chunks)
        await self.rebuild_indexes()
