"""
Node synthesis: turns a chunk of a context into a :class:`ContextNode`.

These pattern-matching heuristics feed chunking thresholds and retrieval
ranking downstream, so their exact behaviour is part of the contract:
  - Importance scoring from the parent's type and metadata hints
  - Sentence-aware summaries of at most 150 characters
  - Keyword extraction seeded with the parent's tags
  - Content-type classification in a fixed priority order
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, Optional, Sequence

from .models import ChunkType, Context, ContextNode, NodeMetadata
from .tokens import estimate_tokens

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BASE_IMPORTANCE: float = 0.5

#: Importance bonus per parent context type.
TYPE_BONUS: dict[str, float] = {
    "code": 0.2,
    "documentation": 0.15,
    "research": 0.1,
}

#: Bonus for each metadata hint (complexity, urgency, importance) set to high.
HIGH_HINT_BONUS: float = 0.1

SUMMARY_LENGTH: int = 150
MAX_KEYWORDS: int = 10
TOP_CONTENT_KEYWORDS: int = 5
MIN_KEYWORD_LENGTH: int = 4

SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)")
NON_WORD_RE = re.compile(r"[^\w\s]")


# ---------------------------------------------------------------------------
# Importance scoring
# ---------------------------------------------------------------------------


def compute_importance(context: Context) -> float:
    """
    Score *context* in [0.0, 1.0].

    Starts at 0.5, adds the type bonus for code / documentation / research
    and 0.1 for every metadata hint set to ``"high"``.  Bonuses stack and the
    total is capped at 1.0.
    """
    score = BASE_IMPORTANCE + TYPE_BONUS.get(context.type, 0.0)
    hints = context.metadata
    for level in (hints.complexity, hints.urgency, hints.importance):
        if level == "high":
            score += HIGH_HINT_BONUS
    return min(score, 1.0)


# ---------------------------------------------------------------------------
# Summaries and keywords
# ---------------------------------------------------------------------------


def summarize(content: str, max_length: int = SUMMARY_LENGTH) -> str:
    """
    Return *content* itself when short enough, otherwise the longest run of
    leading whole sentences that fits in *max_length* characters.  Falls back
    to a hard cut with a trailing ellipsis when not even the first sentence
    fits.
    """
    if len(content) <= max_length:
        return content

    summary = ""
    for match in SENTENCE_RE.finditer(content):
        sentence = match.group().strip()
        if not sentence:
            continue
        candidate = f"{summary} {sentence}" if summary else sentence
        if len(candidate) > max_length:
            break
        summary = candidate

    return summary or content[:max_length].strip() + "..."


def extract_keywords(content: str, tags: Iterable[str] = ()) -> list[str]:
    """
    Tags first, then the five most frequent content words longer than three
    characters; deduplicated and capped at ten entries.
    """
    words = [
        word
        for word in NON_WORD_RE.sub("", content.lower()).split()
        if len(word) >= MIN_KEYWORD_LENGTH
    ]
    top_words = [word for word, _ in Counter(words).most_common(TOP_CONTENT_KEYWORDS)]
    keywords = [tag for tag in tags if tag] + top_words
    return list(dict.fromkeys(keywords))[:MAX_KEYWORDS]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_chunk_type(content: str, parent_type: Optional[str] = None) -> ChunkType:
    """First matching rule wins: code, markdown, web content, parent type, text."""
    if "```" in content or "function" in content or "class" in content:
        return "code"
    if "#" in content or "**" in content or "[" in content:
        return "markdown"
    if "http" in content or "www." in content:
        return "web_content"
    if parent_type == "conversation":
        return "conversation"
    if parent_type == "meeting":
        return "meeting"
    return "text"


# ---------------------------------------------------------------------------
# Node construction
# ---------------------------------------------------------------------------


def node_id(context_id: str, chunk_index: int) -> str:
    return f"{context_id}_node_{chunk_index}"


def synthesize_node(
    content: str,
    context: Context,
    chunk_index: int,
    total_chunks: int,
    overlap: int = 0,
) -> ContextNode:
    """
    Build the node for one chunk of *context*.

    *overlap* leading characters of *content* repeat the previous chunk and
    are left out of ``token_count``.
    """
    return ContextNode(
        id=node_id(context.id, chunk_index),
        content=content,
        token_count=estimate_tokens(content[overlap:]),
        importance=compute_importance(context),
        summary=summarize(content),
        keywords=extract_keywords(content, context.tags),
        relationships=[],
        metadata=NodeMetadata(
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            original_context_id=context.id,
            chunk_type=classify_chunk_type(content, context.type),
            is_optimized=False,
            overlap=overlap,
        ),
        parent_node_id=context.id,
        created_at=context.created_at,
        updated_at=context.updated_at,
    )


def synthesize_nodes(
    chunks: Sequence[str],
    context: Context,
    overlaps: Optional[Sequence[int]] = None,
) -> list[ContextNode]:
    """
    Build every node of one conversion.

    Each node depends only on its own chunk and index, so ids and sibling
    counts are the same whatever order the chunks are processed in.
    """
    total = len(chunks)
    overlaps = overlaps or [0] * total
    return [
        synthesize_node(chunk, context, i, total, overlaps[i])
        for i, chunk in enumerate(chunks)
    ]
