"""Inverted BM25-style lexical index."""
import logging
import math
from collections import Counter

from ..models.document import Chunk
from .tokenizer import tokenize

logger = logging.getLogger(__name__)


class LexicalIndex:
    """Per-chunk sparse term weights, tf(term, chunk) * idf(term).

    idf = ln((N - df + 0.5) / (df + 0.5)). Terms present in more than half of
    the corpus get a negative weight, so a chunk is only returned when the
    summed weight of its shared terms is positive.
    """

    def __init__(self) -> None:
        self._weights: dict[str, dict[str, float]] = {}
        self._order: list[str] = []

    def __len__(self) -> int:
        return len(self._order)

    @staticmethod
    def document_frequencies(token_lists: list[list[str]]) -> Counter:
        doc_freq: Counter = Counter()
        for terms in token_lists:
            doc_freq.update(set(terms))
        return doc_freq

    def add(self, chunk_id: str, terms: list[str], doc_freq: Counter, total: int) -> None:
        """Store weights for one chunk. Re-adding an id replaces its entry."""
        if chunk_id not in self._weights:
            self._order.append(chunk_id)
        term_freq = Counter(terms)
        weights: dict[str, float] = {}
        for term, tf in term_freq.items():
            df = doc_freq.get(term, 0)
            weights[term] = tf * math.log((total - df + 0.5) / (df + 0.5))
        self._weights[chunk_id] = weights

    def score(self, chunk_id: str, query_terms: list[str]) -> float:
        weights = self._weights.get(chunk_id)
        if not weights:
            return 0.0
        return sum(weights.get(term, 0.0) for term in query_terms)

    def search(self, query: str, limit: int) -> list[tuple[str, float]]:
        """Chunks with a positive summed weight, best first, stable on ties."""
        query_terms = tokenize(query)
        if not query_terms or limit <= 0:
            return []

        scored = []
        for chunk_id in self._order:
            weights = self._weights[chunk_id]
            if not any(term in weights for term in query_terms):
                continue
            score = self.score(chunk_id, query_terms)
            if score > 0:
                scored.append((chunk_id, score))

        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:limit]

    @classmethod
    def build(cls, chunks: list[Chunk]) -> "LexicalIndex":
        """Synchronous build, used for small corpora and tests."""
        token_lists = [tokenize(c.content) for c in chunks]
        doc_freq = cls.document_frequencies(token_lists)
        index = cls()
        for chunk, terms in zip(chunks, token_lists):
            index.add(chunk.id, terms, doc_freq, len(chunks))
        logger.debug(f"Lexical index built: {len(index)} chunks, {len(doc_freq)} terms")
        return index
