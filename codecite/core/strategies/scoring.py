
import logging
from abc import ABC, abstractmethod
from dataclasses import replace

from ..models.document import SearchResult

logger = logging.getLogger(__name__)


class ScoringStrategy(ABC):
    """Base class for scoring strategies."""

    @abstractmethod
    def apply(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        """Apply strategy to results."""
        ...


class IntentBoostStrategy(ScoringStrategy):
    """Scale scores by classifier confidence: factor = 0.5 + 0.5 * confidence."""

    def __init__(self, confidence: float):
        """Initialize strategy.

        Args:
            confidence: Intent confidence in [0, 1].
        """
        self._factor = 0.5 + 0.5 * min(1.0, max(0.0, confidence))

    @property
    def factor(self) -> float:
        return self._factor

    def apply(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        """Return boosted copies; the input results are left untouched."""
        return [
            replace(r, score=r.score * self._factor, relevance=r.relevance * self._factor)
            for r in results
        ]


class DeduplicateStrategy(ScoringStrategy):
    """Keep the highest-scoring result per chunk id, best first, truncated."""

    def __init__(self, limit: int = 6):
        """Initialize strategy.

        Args:
            limit: Maximum number of results kept.
        """
        self._limit = limit

    def apply(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        best: dict[str, SearchResult] = {}
        for result in results:
            current = best.get(result.chunk.id)
            if current is None or result.score > current.score:
                best[result.chunk.id] = result

        unique = sorted(best.values(), key=lambda r: r.score, reverse=True)

        if len(unique) < len(results):
            logger.info(
                f"Dedup: {len(results)} → {len(unique)} "
                f"(keeping {min(len(unique), self._limit)})"
            )

        return unique[: self._limit]
