"""Pytest fixtures and test utilities for the codecite test suite."""

from typing import Optional

import pytest
import pytest_asyncio

from codecite.core.errors import GenerationError
from codecite.core.models.chat import GenerationResult
from codecite.core.models.document import Chunk, ChunkMetadata, Citation
from codecite.core.services.intent_service import IntentClassifier
from codecite.core.services.search_service import SearchService
from codecite.infrastructure.rerankers.heuristic import HeuristicReranker


# ============================================================================
# CHUNK FIXTURES
# ============================================================================


def make_chunk(
    file_path: str,
    content: str,
    start_line: int = 1,
    end_line: int = 10,
    language: str = "typescript",
    chunk_type: str = "file",
    tags: Optional[list[str]] = None,
) -> Chunk:
    return Chunk.create(
        content=content,
        file_path=file_path,
        start_line=start_line,
        end_line=end_line,
        language=language,
        metadata=ChunkMetadata(type=chunk_type, tags=tags or []),
    )


USE_API_CONTENT = """export function useApi() {
  const [data, setData] = useState(null);
  return { data, setData };
}"""


@pytest.fixture
def code_corpus() -> list[Chunk]:
    """Small TypeScript project with one hook, components, utils and docs."""
    return [
        make_chunk(
            "src/hooks/useApi.ts", USE_API_CONTENT, 1, 20,
            chunk_type="hook", tags=["hook", "react"],
        ),
        make_chunk(
            "src/components/Button.tsx",
            'export function Button(props) {\n  return <button className="btn">{props.label}</button>;\n}',
            1, 15, chunk_type="component", tags=["react", "ui"],
        ),
        make_chunk(
            "src/utils/format.ts",
            "export function formatDate(date) {\n  return date.toISOString();\n}",
            1, 10, chunk_type="function", tags=["utils"],
        ),
        make_chunk(
            "src/routes/index.ts",
            "const router = createRouter();\nrouter.get('/users', listUsers);\nrouter.post('/users', createUser);",
            1, 12, chunk_type="route", tags=["route", "router"],
        ),
        make_chunk(
            "docs/README.md",
            "# Dashboard\nThis project renders analytics dashboards for sales teams.",
            1, 5, language="markdown", chunk_type="file", tags=["docs"],
        ),
    ]


@pytest_asyncio.fixture
async def search_service(code_corpus) -> SearchService:
    """Search service with reranking, indexes built over code_corpus."""
    service = SearchService(reranker=HeuristicReranker())
    service.add_chunks(code_corpus)
    await service.rebuild_indexes()
    return service


@pytest.fixture
def classifier() -> IntentClassifier:
    return IntentClassifier()


# ============================================================================
# GENERATION BACKEND FAKES
# ============================================================================


class FakeBackend:
    """Deterministic generation backend recording its calls."""

    def __init__(
        self,
        content: str = "The hook lives in [src/hooks/useApi.ts:1-20].",
        confidence: Optional[float] = 0.9,
        citations: Optional[list[Citation]] = None,
        error: Optional[BaseException] = None,
    ):
        self.content = content
        self.confidence = confidence
        self.citations = citations or []
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []

    async def generate(self, prompt: str, context: list[str]) -> GenerationResult:
        self.calls.append((prompt, context))
        if self.error is not None:
            raise self.error
        return GenerationResult(
            content=self.content,
            citations=list(self.citations),
            confidence=self.confidence,
            tokens_used=len(self.content) // 4,
            processing_time=1,
        )


class FakeStreamingBackend(FakeBackend):
    """Backend that streams a fixed list of fragments."""

    def __init__(self, fragments: list[str], fail_after: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.fragments = fragments
        self.fail_after = fail_after
        self.stream_calls = 0

    async def generate_stream(self, prompt: str, context: list[str]):
        self.stream_calls += 1
        for i, fragment in enumerate(self.fragments):
            if self.fail_after is not None and i == self.fail_after:
                raise GenerationError("stream dropped")
            yield fragment


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


class FakeClock:
    """Manually advanced time source in seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
