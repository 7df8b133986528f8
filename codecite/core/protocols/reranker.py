"""Reranker protocol for dependency injection."""
from typing import Protocol, runtime_checkable

from ..models.document import SearchResult


@runtime_checkable
class RerankerProtocol(Protocol):
    """Protocol for reranking service."""

    def rerank(
        self,
        query: str,
        results: list[SearchResult],
        top_k: int = 20,
    ) -> list[SearchResult]:
        """Rerank search results by relevance.

        Args:
            query: User query.
            results: Candidates to rerank.
            top_k: Number of results to keep.

        Returns:
            The same candidates, reordered and truncated, with
            rerank_score/original_score set and score replaced by the
            combined score.
        """
        ...
