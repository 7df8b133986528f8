"""Intent service - pattern-scored query classification and expansion."""

import logging
import re
from typing import Optional

from ..models.document import SearchFilters
from ..models.intent import IntentType, QueryIntent

logger = logging.getLogger(__name__)

# Ordered pattern table. Portuguese alternations are part of the rule set.
INTENT_PATTERNS: tuple[tuple[IntentType, tuple[str, ...]], ...] = (
    (IntentType.SYMBOL, (
        r"\b(função|function|method|método)\s+(\w+)",
        r"\b(class|classe)\s+(\w+)",
        r"\b(component|componente)\s+(\w+)",
        r"\b(hook|useState|useEffect|use\w+)",
        r"\b(interface|type)\s+(\w+)",
    )),
    (IntentType.FILE, (
        r"\b(arquivo|file)\s+(\w+\.\w+)",
        r"\b(\w+\.(ts|tsx|js|jsx|md|json))",
        r"\bpath|caminho",
        r"\bonde está|where is",
    )),
    (IntentType.EXPLANATION, (
        r"\b(como funciona|how does|como|how)",
        r"\b(o que é|what is|que é)",
        r"\b(explique|explain|explicar)",
        r"\b(por que|why|porque)",
        r"\b(quando|when|onde|where)",
    )),
    (IntentType.HOWTO, (
        r"\b(como fazer|how to|como usar|how to use)",
        r"\b(tutorial|exemplo|example)",
        r"\b(implementar|implement|criar|create)",
        r"\b(configurar|configure|setup)",
        r"\b(instalar|install)",
    )),
    (IntentType.ROUTE, (
        r"\b(rota|route|endpoint|api)",
        r"\b(página|page|url|path)",
        r"\b(navegação|navigation)",
        r"\b(router|routing)",
    )),
    (IntentType.ERROR, (
        r"\b(erro|error|bug|falha|problema)",
        r"\b(exception|exceção)",
        r"\b(não funciona|not working|broken)",
        r"\b(debug|debugging)",
        r"\b(stack trace|stacktrace)",
    )),
    (IntentType.TEST, (
        r"\b(test|tests|teste|testes|testing)\b",
        r"\b(spec|unit test|integration test)\b",
        r"\b(mock|fixture|assert)",
    )),
)

ENTITY_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"\b(função|function|class|component|hook)\s+(\w+)", re.IGNORECASE),
    re.compile(r"\b(\w+)\s*(função|function|class|component)", re.IGNORECASE),
    re.compile(r"\b(\w+\.\w+)"),
    re.compile(r"\b[A-Z]\w+"),
    re.compile(r"\buse\w+", re.IGNORECASE),
)

KEYWORD_STOP_WORDS = frozenset({
    "o", "a", "os", "as", "um", "uma", "de", "do", "da", "dos", "das", "em",
    "no", "na", "nos", "nas", "com", "por", "para", "é", "são",
    "the", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "being", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "can", "this", "that", "these", "those",
})

FILE_EXTENSIONS = ("ts", "tsx", "js")
FILE_ENTITY = re.compile(r"\.(ts|tsx|js|jsx|md|json)$", re.IGNORECASE)

MAX_ENTITIES = 5
MAX_KEYWORDS = 10
MAX_EXPANSIONS = 6
REPEAT_BONUS = 0.2
DEFAULT_EXPLANATION_SCORE = 0.5


class IntentClassifier:
    """Rule-table classifier: every type owns an ordered list of patterns."""

    def __init__(
        self,
        rules: Optional[tuple[tuple[IntentType, tuple[str, ...]], ...]] = None,
        debug: bool = False,
    ):
        """Initialize classifier.

        Args:
            rules: Ordered (type, patterns) table. Defaults to INTENT_PATTERNS.
            debug: Log per-type scores.
        """
        self._debug = debug
        self._rules = [
            (intent_type, [re.compile(p, re.IGNORECASE) for p in patterns])
            for intent_type, patterns in (rules or INTENT_PATTERNS)
        ]

    def _log(self, message: str) -> None:
        """Log debug message."""
        if self._debug:
            logger.info(f"[intent] {message}")

    @staticmethod
    def pattern_score(query: str, patterns: list[re.Pattern]) -> float:
        """One point per matching pattern, plus 0.2 per repeat occurrence."""
        score = 0.0
        for pattern in patterns:
            matches = sum(1 for _ in pattern.finditer(query))
            if matches:
                score += 1 + REPEAT_BONUS * (matches - 1)
        return score

    def calculate_scores(self, query: str) -> dict[IntentType, float]:
        """Normalized score per type, in enumeration order."""
        query_lower = query.lower()
        scores = {t: 0.0 for t in IntentType}
        for intent_type, patterns in self._rules:
            scores[intent_type] = self.pattern_score(query_lower, patterns)

        max_raw = max(scores.values())
        if max_raw > 0:
            return {t: s / max_raw for t, s in scores.items()}

        scores[IntentType.EXPLANATION] = DEFAULT_EXPLANATION_SCORE
        return scores

    def classify(self, query: str) -> QueryIntent:
        """Classify a query.

        Args:
            query: User query.

        Returns:
            Winning intent with confidence, entities and keywords.
        """
        scores = self.calculate_scores(query)

        # max() keeps the first maximal item, which follows enumeration order
        winner = max(IntentType, key=lambda t: scores[t])
        intent = QueryIntent(
            type=winner,
            confidence=scores[winner],
            entities=self.extract_entities(query),
            keywords=self.extract_keywords(query),
        )

        self._log(
            f"'{query[:50]}' -> {winner.value} ({intent.confidence:.2f}) "
            f"scores={ {t.value: round(s, 2) for t, s in scores.items()} }"
        )
        return intent

    @staticmethod
    def extract_entities(query: str) -> list[str]:
        found: list[str] = []
        for pattern in ENTITY_PATTERNS:
            found.extend(m.group(0).strip() for m in pattern.finditer(query))

        unique = [e for e in dict.fromkeys(found) if len(e) > 2]
        return unique[:MAX_ENTITIES]

    @staticmethod
    def extract_keywords(query: str) -> list[str]:
        keywords = []
        for word in query.split():
            cleaned = re.sub(r"[^\w]", "", word).lower()
            if len(cleaned) > 2 and cleaned not in KEYWORD_STOP_WORDS:
                keywords.append(cleaned)
        return keywords[:MAX_KEYWORDS]

    def expand_query(self, query: str, intent: QueryIntent) -> list[str]:
        """Derive extra query strings for the intent type.

        Returns:
            Up to six unique queries, the original first.
        """
        queries = [query]

        if intent.type is IntentType.SYMBOL:
            for entity in intent.entities:
                queries.extend([
                    entity,
                    f"export {entity}",
                    f"import {entity}",
                    f"{entity} function",
                    f"{entity} component",
                ])
        elif intent.type is IntentType.FILE:
            for keyword in intent.keywords:
                queries.append(f"{keyword} file")
                queries.extend(f"{keyword}.{ext}" for ext in FILE_EXTENSIONS)
        elif intent.type is IntentType.HOWTO:
            queries.extend(["example", "usage", "implement"])
            for keyword in intent.keywords:
                queries.extend([f"how to {keyword}", f"{keyword} example"])
        elif intent.type is IntentType.ERROR:
            queries.extend(["error", "exception", "try catch"])
            for keyword in intent.keywords:
                queries.extend([f"{keyword} error", f"{keyword} exception"])
        elif intent.type is IntentType.ROUTE:
            queries.extend(["route", "router", "path", "page"])

        return list(dict.fromkeys(queries))[:MAX_EXPANSIONS]

    @staticmethod
    def filters_for(intent: QueryIntent) -> Optional[SearchFilters]:
        """Structural filters implied by the intent, or None."""
        filters = SearchFilters()

        if intent.type is IntentType.SYMBOL:
            filters.types = ["function", "component", "hook", "service"]
        elif intent.type is IntentType.FILE:
            filters.types = ["file"]
        elif intent.type is IntentType.ROUTE:
            filters.types = ["route", "file"]
            filters.tags = ["route", "router", "navigation"]
        elif intent.type is IntentType.TEST:
            filters.types = ["test"]
            filters.tags = ["test"]
        elif intent.type is IntentType.ERROR:
            filters.tags = ["error", "exception", "try", "catch"]

        file_entities = [
            e for e in intent.entities if "." in e or FILE_ENTITY.search(e)
        ]
        if file_entities:
            filters.file_path = file_entities[0]

        return None if filters.is_empty() else filters
