"""
Corpus-wide statistics over stored context nodes.

This is a full scan of the collection, meant for dashboards and operators
rather than hot paths.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Any, Iterable, Mapping, Optional

from .models import NodeStats


def compute_stats(metadatas: Iterable[Optional[Mapping[str, Any]]]) -> NodeStats:
    """
    Aggregate node counts by type and token totals from stored metadata.

    Nodes without a type are counted under ``"unknown"``.  The average is
    rounded half up to the nearest integer and is 0 for an empty corpus.
    """
    by_type: Counter[str] = Counter()
    total_tokens = 0
    total_nodes = 0

    for meta in metadatas:
        meta = meta or {}
        total_nodes += 1
        by_type[meta.get("chunk_type") or "unknown"] += 1
        total_tokens += int(meta.get("token_count") or 0)

    return NodeStats(
        total_nodes=total_nodes,
        nodes_by_type=dict(by_type),
        average_tokens=math.floor(total_tokens / total_nodes + 0.5) if total_nodes else 0,
        total_tokens=total_tokens,
    )
