"""Query intent models."""
from dataclasses import dataclass, field
from enum import Enum


class IntentType(Enum):
    """Purpose of a user query. Member order is the tie-break order."""
    SYMBOL = "symbol"
    FILE = "file"
    EXPLANATION = "explanation"
    HOWTO = "howto"
    ROUTE = "route"
    ERROR = "error"
    TEST = "test"


@dataclass
class QueryIntent:
    """Classified query with extracted entities and keywords."""
    type: IntentType
    confidence: float
    entities: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
