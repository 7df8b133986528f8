"""Protocol interfaces for dependency injection."""
from .cache import VectorCacheProtocol
from .llm import GenerationBackendProtocol, StreamingBackendProtocol
from .reranker import RerankerProtocol

__all__ = [
    "VectorCacheProtocol",
    "GenerationBackendProtocol",
    "StreamingBackendProtocol",
    "RerankerProtocol",
]
