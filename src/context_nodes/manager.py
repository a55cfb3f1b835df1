"""
ContextNodeManager: high-level API for turning contexts into stored nodes.

This is the entry-point for applications that capture contexts and want
them chunked, enriched and searchable.  Build one manager at start-up and
pass it to whatever needs it.

Usage example::

    import asyncio

    from context_nodes import Context, ContextNodeManager

    manager = ContextNodeManager(db_path="./nodes")

    async def ingest() -> None:
        context = Context(id="ctx-1", content=open("notes.md").read(), type="documentation")
        nodes = await manager.convert_context_to_nodes(context)
        for node in await manager.search_context_nodes("authentication"):
            print(node.id, node.summary)

    asyncio.run(ingest())
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from .chunker import chunk_content
from .config import Settings
from .errors import PartialConversion, StoreFailure, ValidationFailure
from .models import ChunkingStrategy, Context, ContextNode, NodeStats
from .store import DEFAULT_TIMEOUT, NodeStore
from .synthesis import synthesize_nodes
from .tokens import CHUNK_THRESHOLD, should_chunk

logger = logging.getLogger(__name__)

ContextInput = Union[Context, Mapping[str, Any]]
StrategyInput = Union[ChunkingStrategy, Mapping[str, Any], None]


class ContextNodeManager:
    """
    Converts contexts to context nodes and serves queries over them.

    Responsibilities
    ----------------
    * **Convert** – Validates a context, decides from its token estimate
      whether it needs chunking, synthesizes one node per chunk and stores
      the batch with a single insert.
    * **Query** – Point lookups, per-context listings, per-type listings and
      text search over stored nodes.
    * **Manage** – Partial node updates, bulk deletion of a context's nodes
      and corpus statistics.

    Parameters
    ----------
    db_path:
        Filesystem path for the ChromaDB persistent store.
    collection_name:
        Name of the ChromaDB collection to use.
    embedding_model:
        sentence-transformers model backing the search index.
    chunk_threshold:
        Estimated token count above which a context is chunked.
    timeout:
        Default timeout in seconds for each store call.
    """

    def __init__(
        self,
        db_path: str = "./chroma_db",
        collection_name: str = "context_nodes",
        embedding_model: str = "all-MiniLM-L6-v2",
        chunk_threshold: int = CHUNK_THRESHOLD,
        timeout: float = DEFAULT_TIMEOUT,
        _store: NodeStore | None = None,
    ) -> None:
        self._store = _store or NodeStore(
            path=db_path,
            collection_name=collection_name,
            embedding_model=embedding_model,
            timeout=timeout,
        )
        self.chunk_threshold = chunk_threshold

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContextNodeManager":
        return cls(
            db_path=settings.db_path,
            collection_name=settings.collection,
            embedding_model=settings.embedding_model,
            chunk_threshold=settings.chunk_threshold,
            timeout=settings.store_timeout,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def should_chunk(self, context: ContextInput) -> bool:
        """Whether *context* is estimated above the chunking threshold."""
        return should_chunk(_validate(Context, context, "context"), self.chunk_threshold)

    async def convert_context_to_nodes(
        self,
        context: ContextInput,
        strategy: StrategyInput = None,
        timeout: Optional[float] = None,
    ) -> list[ContextNode]:
        """
        Split *context* into context nodes and persist them.

        Small contexts become a single node holding the whole content.
        Larger ones are chunked with *strategy* (defaults apply when
        omitted).  Conversations are split per turn when the strategy asks
        for it.

        Raises
        ------
        ValidationFailure
            The context or strategy is malformed; nothing was written.
        PartialConversion
            Storing the nodes failed.  Some may have been written: delete
            the context's nodes before retrying.
        """
        context = _validate(Context, context, "context")
        strategy = _validate(ChunkingStrategy, strategy or {}, "chunking strategy")
        logger.info("Converting context %s to context nodes", context.id)

        by_turns = context.type == "conversation" and strategy.split_conversation_turns
        if by_turns or should_chunk(context, self.chunk_threshold):
            result = chunk_content(context.content, strategy, conversation=context.type == "conversation")
            pieces = [chunk.content for chunk in result.chunks] or [context.content]
            overlaps = [chunk.overlap for chunk in result.chunks] or [0]
            logger.info(
                "Context %s split into %d chunk(s), ~%d tokens",
                context.id,
                len(pieces),
                result.total_tokens,
            )
        else:
            logger.info("Context %s is small enough for a single node", context.id)
            pieces, overlaps = [context.content], [0]

        nodes = synthesize_nodes(pieces, context, overlaps)
        try:
            await self._store.insert_batch(nodes, timeout=timeout)
        except StoreFailure as exc:
            logger.error("Failed to store %d node(s) for context %s: %s", len(nodes), context.id, exc)
            raise PartialConversion(context.id, exc) from exc

        logger.info("Converted context %s to %d context node(s)", context.id, len(nodes))
        return nodes

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_context_nodes(self, context_id: str, timeout: Optional[float] = None) -> list[ContextNode]:
        """Nodes of *context_id* in chunk order; empty when there are none."""
        return await self._store.get_by_context(context_id, timeout=timeout)

    async def get_context_node(self, node_id: str, timeout: Optional[float] = None) -> ContextNode | None:
        return await self._store.get_by_id(node_id, timeout=timeout)

    async def search_context_nodes(
        self,
        query: str,
        limit: int = 20,
        timeout: Optional[float] = None,
    ) -> list[ContextNode]:
        return await self._store.search_by_text(query, limit=limit, timeout=timeout)

    async def get_context_nodes_by_type(
        self,
        chunk_type: str,
        limit: int = 100,
        timeout: Optional[float] = None,
    ) -> list[ContextNode]:
        return await self._store.list_by_type(chunk_type, limit=limit, timeout=timeout)

    async def get_context_node_stats(self, timeout: Optional[float] = None) -> NodeStats:
        return await self._store.compute_stats(timeout=timeout)

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def update_context_node(
        self,
        node_id: str,
        partial: Mapping[str, Any],
        timeout: Optional[float] = None,
    ) -> ContextNode:
        """Apply a partial update; raises ``NodeNotFound`` for unknown ids."""
        return await self._store.update(node_id, partial, timeout=timeout)

    async def delete_context_nodes(self, context_id: str, timeout: Optional[float] = None) -> int:
        """Delete every node derived from *context_id*; returns how many."""
        return await self._store.delete_by_context(context_id, timeout=timeout)


def _validate(model: Any, value: Any, label: str) -> Any:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise ValidationFailure(f"Invalid {label}: {exc}") from exc
