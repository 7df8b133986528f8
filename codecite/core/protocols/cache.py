"""Vector cache protocol for dependency injection."""
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class VectorCacheProtocol(Protocol):
    """Protocol for a content-keyed vector cache."""

    def get(self, content: str) -> Optional[list[float]]:
        """Return the cached vector for content, or None on a miss.

        Args:
            content: Raw chunk content. Keyed by its normalized hash.

        Returns:
            Cached vector or None.
        """
        ...

    def set(self, content: str, vector: list[float]) -> None:
        """Store a vector for content."""
        ...

    def has(self, content: str) -> bool:
        """Check for an unexpired entry without touching access stats."""
        ...

    def delete(self, content: str) -> bool:
        """Remove the entry for content."""
        ...

    def clear(self) -> None:
        """Drop every entry and reset stats."""
        ...

    def persist(self) -> bool:
        """Flush to durable storage if dirty.

        Returns:
            True if a write happened.
        """
        ...

    def start_maintenance(self) -> None:
        """Begin timed flushes on the running event loop."""
        ...

    async def shutdown(self) -> None:
        """Stop timed flushes and write any pending changes."""
        ...
