"""
context-nodes: chunking and node indexing for captured AI contexts.

Splits large contexts into token-bounded, semantically coherent chunks,
enriches each chunk into a context node (summary, keywords, importance,
type) and stores the nodes in a local ChromaDB collection for lookup,
search and statistics.
"""

from .chunker import chunk_content
from .errors import (
    ContextNodeError,
    NodeNotFound,
    PartialConversion,
    StoreFailure,
    StoreTimeout,
    ValidationFailure,
)
from .manager import ContextNodeManager
from .models import ChunkingStrategy, Context, ContextMetadata, ContextNode, NodeStats
from .store import NodeStore
from .synthesis import synthesize_node
from .tokens import estimate_tokens, should_chunk

__all__ = [
    "ChunkingStrategy",
    "Context",
    "ContextMetadata",
    "ContextNode",
    "ContextNodeError",
    "ContextNodeManager",
    "NodeNotFound",
    "NodeStats",
    "NodeStore",
    "PartialConversion",
    "StoreFailure",
    "StoreTimeout",
    "ValidationFailure",
    "chunk_content",
    "estimate_tokens",
    "should_chunk",
    "synthesize_node",
]
