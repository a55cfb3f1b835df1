"""
Typed models shared by the chunker, the synthesizer and the node store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Level = Literal["low", "medium", "high"]

ChunkType = Literal["code", "markdown", "web_content", "conversation", "meeting", "text"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContextMetadata(BaseModel):
    """
    Hints supplied with a context.

    Every field is optional; an absent hint contributes nothing to a node's
    importance score.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    complexity: Optional[Level] = None
    urgency: Optional[Level] = None
    importance: Optional[Level] = None


class Context(BaseModel):
    """A unit of captured text owned by the calling application."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    content: str
    type: str = "note"
    tags: list[str] = Field(default_factory=list)
    metadata: ContextMetadata = Field(default_factory=ContextMetadata)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ChunkingStrategy(BaseModel):
    """How the chunker sizes chunks and which boundaries it prefers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_tokens: int = Field(default=4000, ge=1)
    overlap_tokens: int = Field(default=0, ge=0)
    respect_code_blocks: bool = True
    respect_headers: bool = True
    respect_paragraphs: bool = True
    respect_sentences: bool = True
    #: Fraction of the budgeted span a natural boundary may give up.
    boundary_tolerance: float = Field(default=0.5, gt=0.0, le=1.0)
    split_conversation_turns: bool = False


class Chunk(BaseModel):
    """
    One piece of chunked content.

    ``start`` and ``end`` delimit the non-overlapping span of the source
    text; ``content`` additionally carries ``overlap`` leading characters
    copied from the previous chunk.  ``token_count`` covers the span only.
    """

    index: int = Field(ge=0)
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    content: str
    token_count: int = Field(ge=0)
    overlap: int = Field(default=0, ge=0)


class ChunkingResult(BaseModel):
    chunks: list[Chunk]
    total_tokens: int
    original_length: int
    chunk_count: int
    strategy: ChunkingStrategy
    metadata: dict[str, Any] = Field(default_factory=dict)


class NodeMetadata(BaseModel):
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    original_context_id: str
    chunk_type: ChunkType = "text"
    is_optimized: bool = False
    #: Leading characters of the node content copied from the previous
    #: sibling; they are not counted in ``token_count``.
    overlap: int = Field(default=0, ge=0)


class ContextNode(BaseModel):
    """A persisted, metadata-enriched chunk of a context."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(min_length=1)
    content: str
    token_count: int = Field(ge=0)
    importance: float
    summary: str = ""
    keywords: list[str] = Field(default_factory=list, max_length=10)
    relationships: list[str] = Field(default_factory=list)
    metadata: NodeMetadata
    parent_node_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("importance")
    @classmethod
    def _clamp_importance(cls, value: float) -> float:
        return min(max(float(value), 0.0), 1.0)


class NodeStats(BaseModel):
    total_nodes: int = 0
    nodes_by_type: dict[str, int] = Field(default_factory=dict)
    average_tokens: int = 0
    total_tokens: int = 0
