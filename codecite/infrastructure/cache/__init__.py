from .embedding_cache import EmbeddingCache

__all__ = ["EmbeddingCache"]
