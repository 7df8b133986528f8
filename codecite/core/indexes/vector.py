"""TF-IDF vector index with cache-backed vectorization."""
import logging
import math
from collections import Counter
from typing import Optional, Sequence

import numpy as np

from ..models.document import Chunk
from ..protocols.cache import VectorCacheProtocol
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

MIN_SIMILARITY = 0.1


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine over the first min(len(a), len(b)) components.

    Vectors have no shared dimensionality (each follows its own first-seen
    term order), so only the common prefix is compared. Returns 0.0 for an
    empty vector or a zero norm.
    """
    length = min(len(vec_a), len(vec_b))
    if length == 0:
        return 0.0

    a = np.asarray(vec_a[:length], dtype=float)
    b = np.asarray(vec_b[:length], dtype=float)
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def tfidf_vector(terms: list[str], doc_freq: Counter, total: int) -> list[float]:
    """tf * ln(N / (df + 1)) over unique terms in first-seen order."""
    term_freq = Counter(terms)
    return [
        term_freq[term] * math.log(total / (doc_freq.get(term, 0) + 1))
        for term in dict.fromkeys(terms)
    ]


class VectorIndex:
    """Per-chunk TF-IDF vectors plus the corpus document frequencies."""

    def __init__(self, cache: Optional[VectorCacheProtocol] = None):
        """Initialize index.

        Args:
            cache: Content-hash keyed vector cache consulted before computing.
        """
        self._cache = cache
        self._vectors: dict[str, list[float]] = {}
        self._order: list[str] = []
        self._doc_freq: Counter = Counter()
        self._total = 0
        self.cache_hits = 0
        self.cache_misses = 0

    def __len__(self) -> int:
        return len(self._order)

    def set_corpus(self, doc_freq: Counter, total: int) -> None:
        self._doc_freq = doc_freq
        self._total = total

    def add(self, chunk: Chunk, terms: list[str]) -> list[float]:
        """Vectorize one chunk, reusing a cached vector when present."""
        vector = None
        if self._cache is not None:
            vector = self._cache.get(chunk.content)
            if vector is not None:
                self.cache_hits += 1
            else:
                self.cache_misses += 1

        if vector is None:
            vector = tfidf_vector(terms, self._doc_freq, self._total)
            if self._cache is not None:
                self._cache.set(chunk.content, vector)

        if chunk.id not in self._vectors:
            self._order.append(chunk.id)
        self._vectors[chunk.id] = vector
        return vector

    def vector_for(self, chunk_id: str) -> list[float]:
        return self._vectors.get(chunk_id, [])

    def query_vector(self, query: str) -> list[float]:
        if self._total == 0:
            return []
        return tfidf_vector(tokenize(query), self._doc_freq, self._total)

    def search(self, query: str, limit: int) -> list[tuple[str, float]]:
        """Chunks with similarity above 0.1, best first, stable on ties."""
        query_vector = self.query_vector(query)
        if not query_vector or limit <= 0:
            return []

        scored = []
        for chunk_id in self._order:
            similarity = cosine_similarity(query_vector, self._vectors[chunk_id])
            if similarity > MIN_SIMILARITY:
                scored.append((chunk_id, similarity))

        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:limit]

    def log_cache_usage(self) -> None:
        total = self.cache_hits + self.cache_misses
        if self._cache is None or total == 0:
            return
        logger.info(
            f"Embedding cache: {self.cache_hits}/{total} hits "
            f"({self.cache_hits / total * 100:.1f}%)"
        )
