"""Error taxonomy for indexing, caching, retrieval and generation."""
from typing import Any, Optional


class CodeciteError(Exception):
    """Base error with optional structured details."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class IndexingError(CodeciteError):
    """Chunk is unreadable or oversized. The chunk is skipped."""


class CacheError(CodeciteError):
    """Persisted cache is corrupt or unwritable. Treated as an empty cache."""


class RetrievalError(CodeciteError):
    """One search over the indexes failed."""


class GenerationError(CodeciteError):
    """Generation backend call failed or timed out."""


class ConfigurationError(CodeciteError):
    """Malformed filters or weights. Callers fall back to defaults."""
