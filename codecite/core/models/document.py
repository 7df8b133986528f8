"""Document domain models."""
import hashlib
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Optional, Union

from ..errors import ConfigurationError
from .intent import IntentType

SNIPPET_LENGTH = 200


def content_hash(content: str) -> str:
    """SHA-256 of normalized content (line endings unified, outer whitespace stripped)."""
    normalized = content.replace("\r\n", "\n").replace("\r", "\n").strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass
class ChunkMetadata:
    """Structural metadata attached to a chunk by the producer."""
    type: str = "file"
    tags: list[str] = field(default_factory=list)
    visibility: str = "public"
    exports: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Chunk:
    """Contiguous fragment of source content."""
    id: str
    content: str
    file_path: str
    start_line: int
    end_line: int
    language: str
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    hash: str = ""

    @classmethod
    def create(
        cls,
        content: str,
        file_path: str,
        start_line: int,
        end_line: int,
        language: str,
        metadata: Optional[ChunkMetadata] = None,
    ) -> "Chunk":
        """Build a chunk with an id derived from its location."""
        return cls(
            id=f"{file_path}:{start_line}-{end_line}",
            content=content,
            file_path=file_path,
            start_line=start_line,
            end_line=end_line,
            language=language,
            metadata=metadata or ChunkMetadata(),
            hash=content_hash(content),
        )

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Chunk":
        meta = data.get("metadata") or {}
        content = data["content"]
        return cls(
            id=data["id"],
            content=content,
            file_path=data["file_path"],
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
            language=data.get("language", "unknown"),
            metadata=ChunkMetadata(
                type=meta.get("type", "file"),
                tags=list(meta.get("tags", [])),
                visibility=meta.get("visibility", "public"),
                exports=list(meta.get("exports", [])),
                imports=list(meta.get("imports", [])),
                extra=dict(meta.get("extra", {})),
            ),
            hash=data.get("hash") or content_hash(content),
        )


@dataclass
class Citation:
    """File and line range backing part of an answer."""
    file_path: str
    start_line: int
    end_line: int
    content: str

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "Citation":
        return cls(
            file_path=chunk.file_path,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            content=chunk.content[:SNIPPET_LENGTH] + "...",
        )


@dataclass
class SearchResult:
    """Ranked chunk returned by a search."""
    chunk: Chunk
    score: float
    relevance: float
    citations: list[Citation] = field(default_factory=list)
    rerank_score: Optional[float] = None
    original_score: Optional[float] = None

    @classmethod
    def for_chunk(cls, chunk: Chunk, score: float) -> "SearchResult":
        return cls(
            chunk=chunk,
            score=score,
            relevance=score,
            citations=[Citation.from_chunk(chunk)],
        )


@dataclass
class SearchFilters:
    """Structural predicates applied after fusion. Absent fields always pass."""
    file_path: Optional[str] = None
    language: Optional[str] = None
    types: Optional[list[str]] = None
    tags: Optional[list[str]] = None

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> Optional["SearchFilters"]:
        """Parse a loosely-typed filter payload.

        Raises:
            ConfigurationError: If a field has the wrong shape.
        """
        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            raise ConfigurationError(
                "Filters must be a mapping", {"payload": repr(payload)}
            )

        def _text(key: str) -> Optional[str]:
            value = payload.get(key)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ConfigurationError(f"Filter '{key}' must be a string", {key: repr(value)})
            return value

        def _strings(key: str) -> Optional[list[str]]:
            value = payload.get(key)
            if value is None:
                return None
            if isinstance(value, str):
                return [value]
            if not isinstance(value, (list, tuple, set)) or not all(
                isinstance(v, str) for v in value
            ):
                raise ConfigurationError(
                    f"Filter '{key}' must be a list of strings", {key: repr(value)}
                )
            return list(value)

        return cls(
            file_path=_text("file_path"),
            language=_text("language"),
            types=_strings("types") if "types" in payload else _strings("type"),
            tags=_strings("tags"),
        )

    def is_empty(self) -> bool:
        return not (self.file_path or self.language or self.types or self.tags)


@dataclass
class SearchQuery:
    """Single retrieval request. Mapping filters are parsed at search time."""
    text: str
    type: IntentType = IntentType.EXPLANATION
    filters: Optional[Union[SearchFilters, Mapping[str, Any]]] = None
