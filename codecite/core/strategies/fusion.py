"""Reciprocal rank fusion and structural filtering."""
import logging
from typing import Optional

from ..models.document import SearchFilters, SearchResult

logger = logging.getLogger(__name__)

RRF_K = 60


def reciprocal_rank_fusion(
    ranked_lists: list[list[SearchResult]], limit: int
) -> list[SearchResult]:
    """Merge rankings; each list adds 1 / (60 + rank + 1) per chunk.

    The merged result for a chunk keeps the fields of its last occurrence,
    relevance included, with only the score replaced by the summed
    contribution.
    """
    fused: dict[str, SearchResult] = {}
    totals: dict[str, float] = {}

    for results in ranked_lists:
        for rank, result in enumerate(results):
            chunk_id = result.chunk.id
            totals[chunk_id] = totals.get(chunk_id, 0.0) + 1.0 / (RRF_K + rank + 1)
            fused[chunk_id] = result

    merged = [
        SearchResult(
            chunk=result.chunk,
            score=totals[chunk_id],
            relevance=result.relevance,
            citations=list(result.citations),
        )
        for chunk_id, result in fused.items()
    ]
    merged.sort(key=lambda r: r.score, reverse=True)
    return merged[:limit]


def matches_filters(result: SearchResult, filters: SearchFilters) -> bool:
    chunk = result.chunk
    if filters.file_path and filters.file_path not in chunk.file_path:
        return False
    if filters.language and chunk.language != filters.language:
        return False
    if filters.types and chunk.metadata.type not in filters.types:
        return False
    if filters.tags and not any(tag in chunk.metadata.tags for tag in filters.tags):
        return False
    return True


def apply_filters(
    results: list[SearchResult], filters: Optional[SearchFilters]
) -> list[SearchResult]:
    """Keep results passing every supplied predicate."""
    if filters is None or filters.is_empty():
        return results

    filtered = [r for r in results if matches_filters(r, filters)]
    if len(filtered) < len(results):
        logger.debug(f"Filters: {len(results)} → {len(filtered)} ({filters})")
    return filtered
