"""
Content chunker: splits long text into ordered, token-bounded chunks.

Strategy:
  1. Collect candidate break positions at code-fence edges, header lines,
     paragraph breaks and sentence ends.  Positions inside a fenced code
     block only count when they are the fence edges themselves.
  2. Walk the text left to right.  For each chunk, find the furthest end
     that keeps the chunk within the token budget.
  3. Inside a tolerance window below that end, cut at the latest boundary
     of the highest-priority kind available; otherwise cut hard at the
     budget.

Chunks never rewrite the text: with no overlap, joining the chunk contents
gives back the original string.
"""

from __future__ import annotations

import bisect
import logging
import math
import re
from datetime import datetime, timezone
from typing import Optional

from .models import Chunk, ChunkingResult, ChunkingStrategy
from .synthesis import classify_chunk_type
from .tokens import CODE_BLOCK_RE, HEADER_RE, PARAGRAPH_BREAK_RE, estimate_tokens

logger = logging.getLogger(__name__)

SENTENCE_BREAK_RE = re.compile(r"[.!?]+\s+")
TURN_SEPARATOR_RE = re.compile(r"^---[ \t]*\n", re.MULTILINE)
TURN_HEADER_RE = re.compile(r"^##\s*Turn\s*\d+", re.MULTILINE | re.IGNORECASE)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def chunk_content(
    content: str,
    strategy: Optional[ChunkingStrategy] = None,
    conversation: bool = False,
) -> ChunkingResult:
    """
    Split *content* into chunks of at most ``strategy.max_tokens`` estimated
    tokens.

    *conversation* marks the content as a captured conversation; together
    with ``strategy.split_conversation_turns`` every turn then starts a new
    chunk.

    A single boundary-free stretch longer than the budget is cut hard.  The
    only way a chunk can exceed the budget is a single character that on its
    own estimates above ``max_tokens``.
    """
    strategy = strategy or ChunkingStrategy()
    levels = _boundary_levels(content, strategy)
    turns = (
        _turn_starts(content)
        if conversation and strategy.split_conversation_turns
        else []
    )

    spans: list[tuple[int, int]] = []
    start = 0
    while start < len(content):
        stop = _next_turn(turns, start, len(content))
        if estimate_tokens(content[start:stop]) <= strategy.max_tokens:
            end = stop
        else:
            limit = _budget_end(content, start, stop, strategy.max_tokens)
            end = _pick_boundary(levels, start, limit, strategy.boundary_tolerance) or limit
        spans.append((start, end))
        start = end

    chunks: list[Chunk] = []
    for index, (span_start, span_end) in enumerate(spans):
        overlap = 0
        if index and strategy.overlap_tokens:
            overlap = _overlap_length(
                content, spans[index - 1][0], span_start, strategy.overlap_tokens
            )
        text = content[span_start - overlap:span_end]
        chunks.append(
            Chunk(
                index=index,
                start=span_start,
                end=span_end,
                content=text,
                token_count=estimate_tokens(content[span_start:span_end]),
                overlap=overlap,
            )
        )

    logger.info(
        "Chunked %d chars into %d chunk(s) (max %d tokens)",
        len(content),
        len(chunks),
        strategy.max_tokens,
    )

    return ChunkingResult(
        chunks=chunks,
        total_tokens=sum(c.token_count for c in chunks),
        original_length=len(content),
        chunk_count=len(chunks),
        strategy=strategy,
        metadata={
            "content_type": classify_chunk_type(content),
            "complexity": _complexity(content),
            "overlap_chars": [c.overlap for c in chunks],
            "turn_breaks": len(turns),
            "chunked_at": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Boundary detection
# ---------------------------------------------------------------------------


def _code_spans(content: str) -> list[tuple[int, int]]:
    return [m.span() for m in CODE_BLOCK_RE.finditer(content)]


def _inside(spans: list[tuple[int, int]], position: int) -> bool:
    return any(start < position < end for start, end in spans)


def _boundary_levels(content: str, strategy: ChunkingStrategy) -> list[list[int]]:
    """
    Return sorted break positions grouped by priority, highest first:
    code-fence edges, headers, paragraph breaks, sentence ends.
    """
    code = _code_spans(content)
    levels: list[list[int]] = []

    if strategy.respect_code_blocks:
        levels.append(sorted({p for span in code for p in span}))
    if strategy.respect_headers:
        levels.append(
            [m.start() for m in HEADER_RE.finditer(content) if not _inside(code, m.start())]
        )
    if strategy.respect_paragraphs:
        levels.append(
            [m.end() for m in PARAGRAPH_BREAK_RE.finditer(content) if not _inside(code, m.end())]
        )
    if strategy.respect_sentences:
        levels.append(
            [m.end() for m in SENTENCE_BREAK_RE.finditer(content) if not _inside(code, m.end())]
        )
    return levels


def _turn_starts(content: str) -> list[int]:
    """Positions where a new conversation turn begins."""
    candidates = sorted(
        {m.end() for m in TURN_SEPARATOR_RE.finditer(content)}
        | {m.start() for m in TURN_HEADER_RE.finditer(content)}
    )
    starts: list[int] = []
    previous = 0
    for position in candidates:
        # A header right after a separator belongs to the same turn start.
        if 0 < position < len(content) and content[previous:position].strip():
            starts.append(position)
            previous = position
    return starts


def _next_turn(turns: list[int], start: int, default: int) -> int:
    i = bisect.bisect_right(turns, start)
    return turns[i] if i < len(turns) else default


# ---------------------------------------------------------------------------
# Cut selection
# ---------------------------------------------------------------------------


def _budget_end(content: str, start: int, stop: int, max_tokens: int) -> int:
    """Furthest end in ``(start, stop]`` keeping the slice within budget."""
    lo, hi = start + 1, stop
    if estimate_tokens(content[start:lo]) > max_tokens:
        return lo
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if estimate_tokens(content[start:mid]) <= max_tokens:
            lo = mid
        else:
            hi = mid - 1
    return lo


def _pick_boundary(
    levels: list[list[int]], start: int, limit: int, tolerance: float
) -> Optional[int]:
    """Latest boundary in the tolerance window, by priority level."""
    floor = max(start + 1, start + math.ceil((limit - start) * (1.0 - tolerance)))
    for positions in levels:
        i = bisect.bisect_right(positions, limit)
        if i and positions[i - 1] >= floor:
            return positions[i - 1]
    return None


def _overlap_length(content: str, previous_start: int, start: int, overlap_tokens: int) -> int:
    """Characters of the previous chunk's tail that fit in *overlap_tokens*."""
    lo, hi = previous_start, start
    while lo < hi:
        mid = (lo + hi) // 2
        if estimate_tokens(content[mid:start]) <= overlap_tokens:
            hi = mid
        else:
            lo = mid + 1
    return start - lo


# ---------------------------------------------------------------------------
# Content analysis
# ---------------------------------------------------------------------------


def _complexity(content: str) -> str:
    words = len(content.split())
    if words > 1000 or len(CODE_BLOCK_RE.findall(content)) > 5:
        return "high"
    if words < 200:
        return "low"
    return "medium"
