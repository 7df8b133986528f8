import logging
import re
from dataclasses import dataclass, replace

from codecite.core.errors import ConfigurationError
from codecite.core.models.document import Chunk, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_ORIGINAL_WEIGHT = 0.3
DEFAULT_RERANK_WEIGHT = 0.7

SYNONYMS: dict[str, tuple[str, ...]] = {
    "function": ("método", "func", "def", "procedure"),
    "class": ("classe", "tipo", "interface", "struct"),
    "component": ("componente", "widget", "element"),
    "error": ("erro", "exception", "bug", "falha"),
    "test": ("teste", "spec", "unit", "integration"),
    "api": ("endpoint", "route", "service", "interface"),
    "config": ("configuração", "settings", "options"),
    "data": ("dados", "info", "information", "content"),
}

# First match wins.
QUERY_TYPES: tuple[tuple[str, re.Pattern], ...] = (
    ("function", re.compile(r"\b(function|método|func|procedure|procedimento)\b")),
    ("class", re.compile(r"\b(class|classe|tipo|interface)\b")),
    ("error", re.compile(r"\b(error|erro|exception|bug|falha)\b")),
    ("test", re.compile(r"\b(test|teste|spec|unit|integration)\b")),
    ("documentation", re.compile(r"\b(doc|documentation|documentação|readme|guide)\b")),
)

FUNCTION_DEFINITION = (
    re.compile(r"\bfunction\s+\w+\s*\("),
    re.compile(r"\bdef\s+\w+\s*\("),
    re.compile(r"\w+\s*=\s*\([^)]*\)\s*=>"),
    re.compile(r"\bmethod\s+\w+"),
    re.compile(r"\bfunc\s+\w+"),
)
FUNCTION_USAGE = re.compile(r"\w+\s*\([^)]*\)")
CLASS_DEFINITION = (
    re.compile(r"\bclass\s+\w+"),
    re.compile(r"\binterface\s+\w+"),
    re.compile(r"\btype\s+\w+\s*="),
    re.compile(r"\bstruct\s+\w+"),
)
CLASS_USAGE = re.compile(r"\bnew\s+\w+\s*\(")
ERROR_HANDLING = (
    re.compile(r"\btry\s*{"),
    re.compile(r"\bcatch\s*\("),
    re.compile(r"\bfinally\s*{"),
    re.compile(r"\bthrow\s+"),
    re.compile(r"\braise\s+"),
    re.compile(r"\.catch\("),
)
ERROR_DEFINITION = (
    re.compile(r"\bclass\s+\w*Error"),
    re.compile(r"\bclass\s+\w*Exception"),
    re.compile(r"extends\s+Error"),
    re.compile(r"Error\s*\("),
)
TEST_PATH = (
    re.compile(r"\btest\b"),
    re.compile(r"\bspec\b"),
    re.compile(r"\.test\."),
    re.compile(r"\.spec\."),
    re.compile(r"__tests__"),
    re.compile(r"/tests?/"),
)
TEST_CODE = (
    re.compile(r"\bdescribe\s*\("),
    re.compile(r"\bit\s*\("),
    re.compile(r"\btest\s*\("),
    re.compile(r"\bexpect\s*\("),
    re.compile(r"\bassert\."),
    re.compile(r"@Test"),
)
DOC_PATH = (
    re.compile(r"\.md$"),
    re.compile(r"\.mdx$"),
    re.compile(r"readme", re.IGNORECASE),
    re.compile(r"changelog", re.IGNORECASE),
    re.compile(r"contributing", re.IGNORECASE),
    re.compile(r"license", re.IGNORECASE),
    re.compile(r"/docs?/"),
)
COMMENT_PREFIXES = ("//", "*", "#")


def _any(patterns: tuple[re.Pattern, ...], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def is_documentation_file(file_path: str) -> bool:
    return _any(DOC_PATH, file_path)


def comment_ratio(content: str) -> float:
    lines = content.split("\n")
    comments = sum(1 for line in lines if line.strip().startswith(COMMENT_PREFIXES))
    return comments / len(lines)


def normalize_weights(original: float, rerank: float) -> tuple[float, float]:
    """Scale weights to sum to 1.

    Raises:
        ConfigurationError: If a weight is negative, not a number, or both are zero.
    """
    try:
        original = float(original)
        rerank = float(rerank)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            "Rerank weights must be numbers",
            {"original": repr(original), "rerank": repr(rerank)},
        ) from e

    total = original + rerank
    if original < 0 or rerank < 0 or not total > 0:
        raise ConfigurationError(
            "Rerank weights must be non-negative with a positive sum",
            {"original": original, "rerank": rerank},
        )
    return original / total, rerank / total


@dataclass
class RerankStats:
    """Averages over one reranked list."""
    total_results: int
    average_original_score: float
    average_rerank_score: float
    average_combined_score: float
    improvement_ratio: float


class HeuristicReranker:
    """Rule-based relevance scorer blended with the retrieval score.

    The rerank score sums capped signals: verbatim term coverage (0.4),
    synonym-aware overlap (0.3), contextual fit (0.2), content quality
    (0.1), plus flat path and documentation bonuses. The rule set is fixed.
    """

    def __init__(
        self,
        original_weight: float = DEFAULT_ORIGINAL_WEIGHT,
        rerank_weight: float = DEFAULT_RERANK_WEIGHT,
    ):
        """Initialize reranker.

        Args:
            original_weight: Weight of the incoming retrieval score.
            rerank_weight: Weight of the heuristic score.
        """
        try:
            self._weights = normalize_weights(original_weight, rerank_weight)
        except ConfigurationError as e:
            logger.warning(f"{e.message} {e.details}, using defaults")
            self._weights = normalize_weights(
                DEFAULT_ORIGINAL_WEIGHT, DEFAULT_RERANK_WEIGHT
            )

    @property
    def weights(self) -> tuple[float, float]:
        return self._weights

    def rerank(
        self, query: str, results: list[SearchResult], top_k: int = 20
    ) -> list[SearchResult]:
        """Rerank results by combined score.

        Args:
            query: User query.
            results: Search results.
            top_k: Number of results to keep.

        Returns:
            Copies of the input results sorted by combined score (descending).
        """
        if not results:
            return []

        original_weight, rerank_weight = self._weights
        reranked = []
        for result in results:
            rerank_score = self.score(query, result.chunk)
            combined = original_weight * result.score + rerank_weight * rerank_score
            combined = min(1.0, max(0.0, combined))
            reranked.append(
                replace(
                    result,
                    score=combined,
                    relevance=combined,
                    citations=list(result.citations),
                    rerank_score=rerank_score,
                    original_score=result.score,
                )
            )

        reranked.sort(key=lambda r: r.score, reverse=True)
        reranked = reranked[:top_k]

        if logger.isEnabledFor(logging.DEBUG):
            top_scores = ", ".join(f"{r.score:.2f}" for r in reranked[:3])
            logger.debug(f"Reranker top-3 scores: [{top_scores}]")

        return reranked

    def score(self, query: str, chunk: Chunk) -> float:
        """Heuristic relevance in [0, 1]."""
        query_lower = query.lower()
        content_lower = chunk.content.lower()
        path_lower = chunk.file_path.lower()

        score = 0.0

        query_terms = [t for t in query_lower.split() if len(t) > 2]
        if query_terms:
            exact = sum(1 for t in query_terms if t in content_lower)
            score += exact / len(query_terms) * 0.4

        score += self.semantic_similarity(query_lower, content_lower) * 0.3
        score += self.contextual_relevance(query_lower, chunk) * 0.2
        score += self.content_quality(chunk) * 0.1

        if any(t in path_lower for t in query_terms):
            score += 0.1

        if is_documentation_file(chunk.file_path):
            score += 0.05

        return min(1.0, max(0.0, score))

    @staticmethod
    def semantic_similarity(query: str, content: str) -> float:
        query_words = set(query.split())
        content_words = set(content.split())
        if not query_words:
            return 0.0

        total = 0.0
        for word in query_words:
            if word in content_words:
                total += 1.0
                continue

            if any(related in content_words for related in SYNONYMS.get(word, ())):
                total += 0.7
                continue

            if any(word in cw or cw in word for cw in content_words):
                total += 0.3

        return total / len(query_words)

    @staticmethod
    def query_type(query: str) -> str:
        for name, pattern in QUERY_TYPES:
            if pattern.search(query.lower()):
                return name
        return "general"

    def contextual_relevance(self, query: str, chunk: Chunk) -> float:
        content = chunk.content
        relevance = 0.0

        query_type = self.query_type(query)
        if query_type == "function":
            if _any(FUNCTION_DEFINITION, content):
                relevance += 0.8
            if FUNCTION_USAGE.search(content):
                relevance += 0.6
        elif query_type == "class":
            if _any(CLASS_DEFINITION, content):
                relevance += 0.8
            if CLASS_USAGE.search(content):
                relevance += 0.5
        elif query_type == "error":
            if _any(ERROR_HANDLING, content):
                relevance += 0.7
            if _any(ERROR_DEFINITION, content):
                relevance += 0.9
        elif query_type == "test":
            if _any(TEST_PATH, chunk.file_path.lower()):
                relevance += 0.8
            if _any(TEST_CODE, content):
                relevance += 0.6
        elif query_type == "documentation":
            if is_documentation_file(chunk.file_path):
                relevance += 0.9
            if comment_ratio(content) > 0.3:
                relevance += 0.7

        if chunk.start_line <= 10:
            relevance += 0.1

        return min(1.0, relevance)

    @staticmethod
    def content_quality(chunk: Chunk) -> float:
        content = chunk.content
        line_count = len(content.split("\n"))
        quality = 0.5

        if is_documentation_file(chunk.file_path):
            quality += 0.3

        quality += comment_ratio(content) * 0.2

        if line_count < 5:
            quality -= 0.2
        elif line_count > 100:
            quality -= 0.1

        if _any(FUNCTION_DEFINITION, content) or _any(CLASS_DEFINITION, content):
            quality += 0.1

        return min(1.0, max(0.0, quality))

    @staticmethod
    def get_stats(results: list[SearchResult]) -> RerankStats:
        if not results:
            return RerankStats(0, 0.0, 0.0, 0.0, 0.0)

        count = len(results)
        avg_original = sum(r.original_score or 0.0 for r in results) / count
        avg_rerank = sum(r.rerank_score or 0.0 for r in results) / count
        avg_combined = sum(r.score for r in results) / count
        return RerankStats(
            total_results=count,
            average_original_score=avg_original,
            average_rerank_score=avg_rerank,
            average_combined_score=avg_combined,
            improvement_ratio=avg_combined / avg_original if avg_original else 0.0,
        )
