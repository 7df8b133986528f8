"""Maximal marginal relevance selection."""
import logging
from typing import Callable

from ..indexes.vector import cosine_similarity
from ..models.document import SearchResult

logger = logging.getLogger(__name__)


class MMRDiversifier:
    """Greedy relevance/redundancy trade-off over a ranked list."""

    def __init__(
        self,
        vector_for: Callable[[str], list[float]],
        relevance_weight: float = 0.7,
        redundancy_weight: float = 0.3,
    ):
        """Initialize diversifier.

        Args:
            vector_for: Lookup from chunk id to its index vector.
            relevance_weight: Weight of the result's own relevance.
            redundancy_weight: Weight of mean similarity to chosen results.
        """
        self._vector_for = vector_for
        self._relevance_weight = relevance_weight
        self._redundancy_weight = redundancy_weight

    def redundancy(self, result: SearchResult, selected: list[SearchResult]) -> float:
        if not selected:
            return 0.0
        vector = self._vector_for(result.chunk.id)
        total = sum(
            cosine_similarity(vector, self._vector_for(s.chunk.id)) for s in selected
        )
        return total / len(selected)

    def diversify(self, results: list[SearchResult], limit: int) -> list[SearchResult]:
        """Pick up to limit results; the top result always goes first."""
        if len(results) <= limit:
            return results
        if limit <= 0:
            return []

        remaining = list(results)
        selected = [remaining.pop(0)]

        while len(selected) < limit and remaining:
            best_index = 0
            best_score = float("-inf")
            for i, candidate in enumerate(remaining):
                mmr = (
                    self._relevance_weight * candidate.relevance
                    - self._redundancy_weight * self.redundancy(candidate, selected)
                )
                if mmr > best_score:
                    best_score = mmr
                    best_index = i
            selected.append(remaining.pop(best_index))

        return selected
