"""
Heuristic token estimation and the chunk / no-chunk decision.

The estimate is deliberately conservative: structured content (code fences,
headers, lists, punctuation) costs extra so that it reaches the chunking
threshold sooner than plain prose with the same word count.
"""

from __future__ import annotations

import logging
import math
import re

from .models import Context

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Contexts estimated above this many tokens are split into several nodes.
CHUNK_THRESHOLD: int = 4000

TOKENS_PER_WORD: float = 2.5
CODE_BLOCK_COST: int = 100
HEADER_COST: int = 20
LIST_ITEM_COST: int = 10
PARAGRAPH_BREAK_COST: int = 15
SENTENCE_COST: int = 5

CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
HEADER_RE = re.compile(r"^#{1,6}\s+", re.MULTILINE)
LIST_ITEM_RE = re.compile(r"^[-*+]\s+", re.MULTILINE)
PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
SENTENCE_END_RE = re.compile(r"[.!?]+")
SPECIAL_CHAR_RE = re.compile(r"[^\w\s]")


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------


def estimate_tokens(content: str) -> int:
    """
    Approximate the language-model token count of *content*.

    ``ceil(words * 2.5)`` plus fixed surcharges per code block, header,
    list item, paragraph break and sentence terminator, and one token per
    punctuation character.  Returns 0 for empty content.
    """
    if not content:
        return 0

    estimate = math.ceil(len(content.split()) * TOKENS_PER_WORD)
    estimate += len(CODE_BLOCK_RE.findall(content)) * CODE_BLOCK_COST
    estimate += len(HEADER_RE.findall(content)) * HEADER_COST
    estimate += len(LIST_ITEM_RE.findall(content)) * LIST_ITEM_COST
    estimate += len(PARAGRAPH_BREAK_RE.findall(content)) * PARAGRAPH_BREAK_COST
    estimate += len(SENTENCE_END_RE.findall(content)) * SENTENCE_COST
    estimate += len(SPECIAL_CHAR_RE.findall(content))
    return estimate


def should_chunk(context: Context, threshold: int = CHUNK_THRESHOLD) -> bool:
    """Return ``True`` when *context* is too large for a single node."""
    tokens = estimate_tokens(context.content)
    logger.debug(
        "Context %s: %d chars, ~%d tokens (threshold %d)",
        context.id,
        len(context.content),
        tokens,
        threshold,
    )
    return tokens > threshold
