"""Chat service - turns a question into a cited answer."""

import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Sequence, Union

from ..models.chat import ChatHistory, ChatMessage, GenerationResult, MessageMetadata
from ..models.document import Citation, SearchFilters, SearchQuery, SearchResult
from ..models.intent import QueryIntent
from ..protocols.llm import GenerationBackendProtocol, StreamingBackendProtocol
from ..strategies.scoring import DeduplicateStrategy, IntentBoostStrategy
from .intent_service import IntentClassifier
from .search_service import SearchService

logger = logging.getLogger(__name__)

ChunkSink = Callable[[str], Union[None, Awaitable[None]]]
History = Union[ChatHistory, Sequence[ChatMessage]]

STREAM_CONFIDENCE = 0.8
MAX_HINTS = 3

INSUFFICIENT_TEMPLATE = """I could not find enough information about "{question}" in the indexed code.

**Suggestions:**
{suggestions}

Try refining your question or check that the relevant files were indexed."""

LOW_CONFIDENCE_TEMPLATE = """I found some information related to "{question}", but not enough to give a reliable answer.

**Files that may be relevant:**
{hints}

Try a more specific question or look at these files directly."""

APOLOGY_TEMPLATE = """Sorry, an internal error occurred while processing your question: "{question}".

Please try again in a moment. If the problem persists, check that the system is running correctly."""

BASE_SUGGESTIONS = (
    "Use more specific terms",
    "Check that the code was indexed correctly",
    "Use specific function, class or file names",
)


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


class ChatService:
    """Answer orchestrator: classify, retrieve, gate, generate, cite."""

    def __init__(
        self,
        llm: GenerationBackendProtocol,
        search_service: SearchService,
        classifier: IntentClassifier,
        max_context_results: int = 6,
        per_query_limit: int = 8,
        sufficiency_threshold: float = 0.1,
        no_response_threshold: float = 0.3,
        history_turns: int = 3,
        use_intent_filters: bool = True,
    ):
        """Initialize chat service.

        Args:
            llm: Generation backend.
            search_service: Search service.
            classifier: Intent classifier.
            max_context_results: Results kept after merging expansions.
            per_query_limit: Results requested per expanded query.
            sufficiency_threshold: Best score must exceed this to call the backend.
            no_response_threshold: Backend confidence below this yields a
                low-confidence message.
            history_turns: Prior messages included in the context.
            use_intent_filters: Apply intent-derived structural filters.
        """
        self._llm = llm
        self._search = search_service
        self._classifier = classifier
        self._dedup = DeduplicateStrategy(max_context_results)
        self._per_query_limit = per_query_limit
        self._sufficiency_threshold = sufficiency_threshold
        self._no_response_threshold = no_response_threshold
        self._history_turns = history_turns
        self._use_intent_filters = use_intent_filters

    def _collect(
        self,
        queries: list[str],
        intent: QueryIntent,
        filters: Optional[SearchFilters],
    ) -> list[SearchResult]:
        boost = IntentBoostStrategy(intent.confidence)
        collected: list[SearchResult] = []
        for text in queries:
            query = SearchQuery(text=text, type=intent.type, filters=filters)
            try:
                results = self._search.search(query, self._per_query_limit)
            except Exception as e:
                logger.warning(f"Expanded query '{text[:50]}' failed: {e}")
                continue
            collected.extend(boost.apply(text, results))
        return collected

    def search_relevant_context(self, question: str, intent: QueryIntent) -> list[SearchResult]:
        """Run every expanded query, boost, merge and truncate.

        A failing expansion is logged and skipped. Intent filters only narrow
        the candidates: when they leave nothing across all expansions, the
        expansions run again unfiltered.
        """
        queries = self._classifier.expand_query(question, intent)
        filters = self._classifier.filters_for(intent) if self._use_intent_filters else None

        collected = self._collect(queries, intent, filters)
        if not collected and filters is not None:
            logger.info(f"Intent filters matched nothing for '{question[:50]}', retrying unfiltered")
            collected = self._collect(queries, intent, None)

        return self._dedup.apply(question, collected)

    def has_sufficient_context(self, results: list[SearchResult]) -> bool:
        return bool(results) and results[0].score > self._sufficiency_threshold

    def prepare_context(
        self,
        results: list[SearchResult],
        history: Optional[History] = None,
    ) -> list[str]:
        """Format retrieved chunks and recent turns as context entries."""
        context = []
        for result in results:
            chunk = result.chunk
            context.append(
                f"FILE: {chunk.file_path}\n"
                f"LINES: {chunk.start_line}-{chunk.end_line}\n"
                f"LANGUAGE: {chunk.language}\n"
                f"TYPE: {chunk.metadata.type}\n"
                f"CONTENT:\n{chunk.content}"
            )

        if isinstance(history, ChatHistory):
            recent = history.recent(self._history_turns)
        else:
            recent = list(history or [])[-self._history_turns:] if self._history_turns > 0 else []
        if recent:
            turns = "\n".join(f"{m.role.upper()}: {m.content}" for m in recent)
            context.append(f"CONVERSATION CONTEXT:\n{turns}")

        return context

    @staticmethod
    def merge_citations(
        llm_citations: list[Citation], results: list[SearchResult]
    ) -> list[Citation]:
        """Backend citations plus one per retrieved chunk not already cited."""
        merged = list(llm_citations)
        for result in results:
            chunk = result.chunk
            covered = any(
                c.file_path == chunk.file_path and c.start_line == chunk.start_line
                for c in merged
            )
            if not covered:
                merged.append(Citation.from_chunk(chunk))
        return merged

    def _is_low_confidence(self, generation: GenerationResult) -> bool:
        return (
            generation.confidence is not None
            and generation.confidence < self._no_response_threshold
        )

    @staticmethod
    def insufficient_context_message(question: str, results: list[SearchResult]) -> ChatMessage:
        suggestions = list(BASE_SUGGESTIONS)
        if results:
            files = [r.chunk.file_path.rsplit("/", 1)[-1] for r in results[:MAX_HINTS]]
            suggestions.append(f"Perhaps you are looking in: {', '.join(files)}")

        return ChatMessage(
            role="assistant",
            content=INSUFFICIENT_TEMPLATE.format(
                question=question,
                suggestions="\n".join(f"• {s}" for s in suggestions),
            ),
            metadata=MessageMetadata(processing_time=0, confidence=0.0),
        )

    @staticmethod
    def low_confidence_message(question: str, results: list[SearchResult]) -> ChatMessage:
        top = results[:MAX_HINTS]
        hints = "\n".join(f"• {r.chunk.location}" for r in top)
        return ChatMessage(
            role="assistant",
            content=LOW_CONFIDENCE_TEMPLATE.format(question=question, hints=hints),
            citations=[Citation.from_chunk(r.chunk) for r in top],
            metadata=MessageMetadata(processing_time=0, confidence=0.2),
        )

    @staticmethod
    def apology_message(question: str) -> ChatMessage:
        return ChatMessage(
            role="assistant",
            content=APOLOGY_TEMPLATE.format(question=question),
            metadata=MessageMetadata(processing_time=0, confidence=0.0),
        )

    def _final_message(
        self, generation: GenerationResult, results: list[SearchResult], start: float
    ) -> ChatMessage:
        return ChatMessage(
            role="assistant",
            content=generation.content,
            citations=self.merge_citations(generation.citations, results),
            metadata=MessageMetadata(
                processing_time=_elapsed_ms(start),
                tokens_used=generation.tokens_used,
                confidence=generation.confidence,
            ),
        )

    async def generate_response(
        self,
        user_message: str,
        intent: Optional[QueryIntent] = None,
        history: Optional[History] = None,
    ) -> ChatMessage:
        """Answer a question with citations.

        Flow:
            1. Classify intent (unless given) and expand the query
            2. Retrieve, boost, dedup, keep the top results
            3. Stop with an "insufficient context" message if the best score is weak
            4. Generate from formatted context
            5. Stop with a "low confidence" message if the backend is unsure
            6. Merge citations and assemble the answer

        Never raises except on cancellation; failures become an apology message.
        """
        start = time.perf_counter()
        try:
            intent = intent or self._classifier.classify(user_message)
            results = self.search_relevant_context(user_message, intent)

            if not self.has_sufficient_context(results):
                logger.info(f"Insufficient context for '{user_message[:50]}...'")
                return self.insufficient_context_message(user_message, results)

            context = self.prepare_context(results, history)
            generation = await self._llm.generate(user_message, context)

            if self._is_low_confidence(generation):
                logger.info(
                    f"Low confidence {generation.confidence:.2f} for '{user_message[:50]}...'"
                )
                return self.low_confidence_message(user_message, results)

            message = self._final_message(generation, results, start)
            logger.info(
                f"Answered '{user_message[:50]}...' with {len(message.citations)} citations "
                f"in {message.metadata.processing_time}ms"
            )
            return message

        except Exception as e:
            logger.error(f"Failed to generate response: {e}", exc_info=True)
            return self.apology_message(user_message)

    async def generate_streaming_response(
        self,
        user_message: str,
        on_chunk: Optional[ChunkSink] = None,
        intent: Optional[QueryIntent] = None,
        history: Optional[History] = None,
    ) -> ChatMessage:
        """Like generate_response, forwarding fragments to on_chunk in arrival order.

        The returned message is assembled from the accumulated text once the
        stream is exhausted.
        """
        start = time.perf_counter()

        async def emit(fragment: str) -> None:
            if on_chunk is None:
                return
            outcome = on_chunk(fragment)
            if inspect.isawaitable(outcome):
                await outcome

        try:
            intent = intent or self._classifier.classify(user_message)
            results = self.search_relevant_context(user_message, intent)

            if not self.has_sufficient_context(results):
                message = self.insufficient_context_message(user_message, results)
                await emit(message.content)
                return message

            context = self.prepare_context(results, history)
            streamed = ""

            if isinstance(self._llm, StreamingBackendProtocol):
                parts: list[str] = []
                async for fragment in self._llm.generate_stream(user_message, context):
                    parts.append(fragment)
                    await emit(fragment)
                streamed = "".join(parts)
                generation = GenerationResult(
                    content=streamed,
                    confidence=STREAM_CONFIDENCE,
                    tokens_used=-(-len(streamed) // 4),
                    processing_time=_elapsed_ms(start),
                )
            else:
                generation = await self._llm.generate(user_message, context)
                for word in generation.content.split(" "):
                    await emit(word + " ")

            if self._is_low_confidence(generation):
                message = self.low_confidence_message(user_message, results)
                if not streamed:
                    await emit(message.content)
                return message

            return self._final_message(generation, results, start)

        except Exception as e:
            logger.error(f"Failed to generate streaming response: {e}", exc_info=True)
            message = self.apology_message(user_message)
            try:
                await emit(message.content)
            except Exception as sink_error:
                logger.warning(f"Chunk sink failed while reporting an error: {sink_error}")
            return message
