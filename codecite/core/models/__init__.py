"""Domain models."""
from .cache import CacheEntry, CacheStats
from .chat import ChatHistory, ChatMessage, GenerationResult, MessageMetadata
from .document import (
    Chunk,
    ChunkMetadata,
    Citation,
    SearchFilters,
    SearchQuery,
    SearchResult,
    content_hash,
)
from .intent import IntentType, QueryIntent

__all__ = [
    "CacheEntry",
    "CacheStats",
    "ChatHistory",
    "ChatMessage",
    "GenerationResult",
    "MessageMetadata",
    "Chunk",
    "ChunkMetadata",
    "Citation",
    "SearchFilters",
    "SearchQuery",
    "SearchResult",
    "content_hash",
    "IntentType",
    "QueryIntent",
]
