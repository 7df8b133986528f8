"""Embedding cache models."""
from dataclasses import dataclass


@dataclass
class CacheEntry:
    """Cached vector keyed by content hash."""
    vector: list[float]
    hash: str
    created_at: float
    access_count: int
    last_access: float

    def to_dict(self) -> dict:
        return {
            "vector": self.vector,
            "hash": self.hash,
            "created_at": self.created_at,
            "access_count": self.access_count,
            "last_access": self.last_access,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        return cls(
            vector=[float(v) for v in data["vector"]],
            hash=str(data["hash"]),
            created_at=float(data["created_at"]),
            access_count=int(data["access_count"]),
            last_access=float(data["last_access"]),
        )


@dataclass
class CacheStats:
    """Snapshot of cache usage."""
    total_entries: int
    hits: int
    misses: int
    hit_rate: float
    cache_size: int
    oldest_entry: float
    newest_entry: float
