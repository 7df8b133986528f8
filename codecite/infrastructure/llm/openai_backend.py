
import logging
import re
import time
from typing import AsyncIterator

import openai
from openai import AsyncOpenAI

from codecite.core.errors import GenerationError
from codecite.core.models.chat import GenerationResult
from codecite.core.models.document import SNIPPET_LENGTH, Citation

logger = logging.getLogger(__name__)

CITATION_PATTERN = re.compile(r"\[([^\]]+):(\d+)-(\d+)\]")

SYSTEM_PROMPT = """You are an assistant specialized in analyzing source code and documentation.

Rules:
1. Answer ONLY from the provided code context.
2. ALWAYS cite every statement using the format [file:start-end].
3. If the context is not enough, answer "I could not find enough information about this in the indexed code."
4. Keep answers concise and practical."""

PROMPT_WITH_CONTEXT = """CODE CONTEXT:
{context}

QUESTION:
{question}

ANSWER:"""


def extract_citations(content: str, context: list[str]) -> list[Citation]:
    """Parse [path:start-end] markers, attaching the matching context entry."""
    citations = []
    for match in CITATION_PATTERN.finditer(content):
        file_path, start, end = match.group(1), match.group(2), match.group(3)
        source = next(
            (entry for entry in context if file_path in entry and f"{start}-{end}" in entry),
            "",
        )
        citations.append(
            Citation(
                file_path=file_path,
                start_line=int(start),
                end_line=int(end),
                content=source[:SNIPPET_LENGTH] + "...",
            )
        )
    return citations


def build_prompt(question: str, context: list[str]) -> str:
    blocks = "\n\n".join(f"--- Chunk {i} ---\n{entry}" for i, entry in enumerate(context, 1))
    return PROMPT_WITH_CONTEXT.format(context=blocks, question=question)


def clean_response(content: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", content).strip()


class OpenAICompatibleBackend:
    """Generation backend for OpenAI-compatible APIs (OpenAI, Ollama, vLLM)."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        model: str = "qwen2.5:7b",
        api_key: str = "ollama",
        max_tokens: int = 2000,
        temperature: float = 0.1,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize backend.

        Args:
            base_url: API URL.
            model: Model name.
            api_key: API key (any string for Ollama).
            max_tokens: Max response tokens.
            temperature: Sampling temperature.
            client: Preconfigured client, mainly for tests.
        """
        self._client = client or AsyncOpenAI(base_url=base_url, api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    def _messages(self, question: str, context: list[str]) -> list[dict]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(question, context)},
        ]

    async def generate(self, prompt: str, context: list[str]) -> GenerationResult:
        """Generate a complete answer.

        Raises:
            GenerationError: If the API call fails or times out.
        """
        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(prompt, context),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except openai.OpenAIError as e:
            raise GenerationError(f"Generation failed: {e}", {"model": self._model}) from e

        content = clean_response(response.choices[0].message.content or "")
        usage = getattr(response, "usage", None)
        tokens = usage.total_tokens if usage is not None else -(-len(content) // 4)

        logger.info(f"[generate] {self._model}: {tokens} tokens")
        return GenerationResult(
            content=content,
            citations=extract_citations(content, context),
            confidence=None,
            tokens_used=tokens,
            processing_time=round((time.perf_counter() - start) * 1000),
        )

    async def generate_stream(self, prompt: str, context: list[str]) -> AsyncIterator[str]:
        """Stream answer fragments.

        Yields:
            Response tokens in arrival order.

        Raises:
            GenerationError: If the API call fails or times out.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self._messages(prompt, context),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                stream=True,
            )
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            raise GenerationError(f"Streaming failed: {e}", {"model": self._model}) from e
