"""Generation backend protocol for dependency injection."""
from typing import AsyncIterator, Protocol, runtime_checkable

from ..models.chat import GenerationResult


@runtime_checkable
class GenerationBackendProtocol(Protocol):
    """Protocol for text generation backends."""

    async def generate(self, prompt: str, context: list[str]) -> GenerationResult:
        """Generate an answer grounded in context.

        Args:
            prompt: User question.
            context: Formatted context entries (retrieved chunks, prior turns).

        Returns:
            Generated content with citations and optional confidence.

        Raises:
            GenerationError: If the backend call fails or times out.
        """
        ...


@runtime_checkable
class StreamingBackendProtocol(GenerationBackendProtocol, Protocol):
    """Backend that can also stream fragments."""

    def generate_stream(self, prompt: str, context: list[str]) -> AsyncIterator[str]:
        """Stream answer fragments in order.

        Args:
            prompt: User question.
            context: Formatted context entries.

        Yields:
            Text fragments.
        """
        ...
