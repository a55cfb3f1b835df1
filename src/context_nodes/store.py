"""
Node store: persists context nodes in a ChromaDB collection.

Each node is one Chroma record: the node content is the document (and feeds
the embedding index used for ranked search) and every other field lives in
the flat record metadata.  List fields are stored as JSON strings.

All calls into Chroma run in a worker thread under a timeout.  Failures are
wrapped in :class:`StoreFailure` naming the operation; nothing is retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

import chromadb
from chromadb.utils import embedding_functions
from pydantic import ValidationError

from .errors import (
    ContextNodeError,
    NodeNotFound,
    StoreFailure,
    StoreTimeout,
    ValidationFailure,
)
from .models import ContextNode, NodeMetadata, NodeStats, utc_now
from .stats import compute_stats
from .tokens import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: float = 30.0

#: Top-level node fields an update may change.
UPDATABLE_FIELDS = frozenset({"content", "summary", "keywords", "importance", "relationships", "metadata"})

#: Metadata fields an update may change; the rest describe the node's place
#: among its siblings.
UPDATABLE_METADATA = frozenset({"chunk_type", "is_optimized"})


def get_embedding_function(
    model_name: str = "all-MiniLM-L6-v2",
) -> embedding_functions.SentenceTransformerEmbeddingFunction:
    """Return a sentence-transformer embedding function for ChromaDB."""
    return embedding_functions.SentenceTransformerEmbeddingFunction(
        model_name=model_name
    )


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------


def _timestamp(value: datetime) -> float:
    return value.timestamp()


def _datetime(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def node_to_record(node: ContextNode) -> tuple[str, str, dict[str, Any]]:
    """Flatten *node* into a Chroma ``(id, document, metadata)`` triple."""
    meta: dict[str, Any] = {
        "token_count": node.token_count,
        "importance": node.importance,
        "summary": node.summary,
        "keywords": json.dumps(node.keywords),
        "relationships": json.dumps(node.relationships),
        "chunk_index": node.metadata.chunk_index,
        "total_chunks": node.metadata.total_chunks,
        "original_context_id": node.metadata.original_context_id,
        "chunk_type": node.metadata.chunk_type,
        "is_optimized": node.metadata.is_optimized,
        "overlap": node.metadata.overlap,
        "created_at": _timestamp(node.created_at),
        "updated_at": _timestamp(node.updated_at),
    }
    # Chroma metadata values cannot be None.
    if node.parent_node_id is not None:
        meta["parent_node_id"] = node.parent_node_id
    return node.id, node.content, meta


def record_to_node(id: str, document: Optional[str], meta: Optional[Mapping[str, Any]]) -> ContextNode:
    """Inverse of :func:`node_to_record`."""
    meta = meta or {}
    return ContextNode(
        id=id,
        content=document or "",
        token_count=int(meta.get("token_count", 0)),
        importance=float(meta.get("importance", 0.0)),
        summary=meta.get("summary", ""),
        keywords=json.loads(meta.get("keywords") or "[]"),
        relationships=json.loads(meta.get("relationships") or "[]"),
        metadata=NodeMetadata(
            chunk_index=int(meta.get("chunk_index", 0)),
            total_chunks=int(meta.get("total_chunks", 1)),
            original_context_id=meta.get("original_context_id", ""),
            chunk_type=meta.get("chunk_type", "text"),
            is_optimized=bool(meta.get("is_optimized", False)),
            overlap=int(meta.get("overlap", 0)),
        ),
        parent_node_id=meta.get("parent_node_id"),
        created_at=_datetime(meta.get("created_at", 0)),
        updated_at=_datetime(meta.get("updated_at", 0)),
    )


def _records_to_nodes(result: Mapping[str, Any]) -> list[ContextNode]:
    ids = result.get("ids") or []
    docs = result.get("documents") or [None] * len(ids)
    metas = result.get("metadatas") or [None] * len(ids)
    return [record_to_node(ids[i], docs[i], metas[i]) for i in range(len(ids))]


def _text_filter(query: str) -> dict[str, Any]:
    """Chroma document filter matching *query* in its common casings."""
    variants = list(dict.fromkeys([query, query.lower(), query.capitalize(), query.upper()]))
    if len(variants) == 1:
        return {"$contains": variants[0]}
    return {"$or": [{"$contains": v} for v in variants]}


class NodeStore:
    """
    Persistent context-node store backed by ChromaDB.

    Ranked search uses the collection's embedding index with cosine
    distance; when that index cannot be queried the store falls back to a
    case-insensitive substring scan.
    """

    def __init__(
        self,
        path: str = "./chroma_db",
        collection_name: str = "context_nodes",
        embedding_model: str = "all-MiniLM-L6-v2",
        timeout: float = DEFAULT_TIMEOUT,
        _client: chromadb.ClientAPI | None = None,
        _embedding_function: Any | None = None,
    ) -> None:
        self.client = _client or chromadb.PersistentClient(path=path)
        ef = _embedding_function or get_embedding_function(embedding_model)
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            embedding_function=ef,
            metadata={"hnsw:space": "cosine"},
        )
        self.timeout = timeout

    async def _call(
        self,
        operation: str,
        fn: Callable[..., Any],
        *args: Any,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """Run a blocking Chroma call in a thread, bounded by a timeout."""
        limit = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=limit)
        except asyncio.TimeoutError as exc:
            logger.error("Store operation %r timed out after %.1fs", operation, limit)
            raise StoreTimeout(operation, limit) from exc
        except ContextNodeError:
            raise
        except Exception as exc:
            logger.error("Store operation %r failed: %s", operation, exc)
            raise StoreFailure(operation, str(exc)) from exc

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def insert_batch(self, nodes: list[ContextNode], timeout: float | None = None) -> None:
        """
        Persist *nodes* with a single bulk insert.

        Ids that already exist make the whole batch fail before anything is
        written.
        """
        if not nodes:
            return
        records = [node_to_record(node) for node in nodes]
        ids = [r[0] for r in records]
        context_id = nodes[0].metadata.original_context_id

        existing = await self._call(
            f"check existing nodes of context {context_id}",
            self.collection.get,
            ids=ids,
            include=["metadatas"],
            timeout=timeout,
        )
        if existing["ids"]:
            taken = ", ".join(existing["ids"])
            logger.error("Refusing to insert batch: node ids already exist (%s)", taken)
            raise StoreFailure(
                f"insert nodes of context {context_id}",
                f"node ids already exist: {taken}; delete them before retrying",
            )

        await self._call(
            f"insert nodes of context {context_id}",
            self.collection.add,
            ids=ids,
            documents=[r[1] for r in records],
            metadatas=[r[2] for r in records],
            timeout=timeout,
        )
        logger.info("Stored %d node(s) for context %s", len(nodes), context_id)

    async def update(
        self,
        node_id: str,
        partial: Mapping[str, Any],
        timeout: float | None = None,
    ) -> ContextNode:
        """
        Merge *partial* into an existing node and stamp ``updated_at``.

        Changing ``content`` recomputes ``token_count`` and clears the
        overlap prefix length.  Raises
        :class:`NodeNotFound` when the node does not exist and
        :class:`ValidationFailure` for fields that may not be updated.
        """
        unknown = set(partial) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailure(f"Cannot update node field(s): {', '.join(sorted(unknown))}")
        meta_changes = partial.get("metadata") or {}
        if not isinstance(meta_changes, Mapping):
            raise ValidationFailure(f"Node metadata update must be a mapping, got {type(meta_changes).__name__}")
        meta_changes = dict(meta_changes)
        unknown = set(meta_changes) - UPDATABLE_METADATA
        if unknown:
            raise ValidationFailure(f"Cannot update node metadata field(s): {', '.join(sorted(unknown))}")

        current = await self.get_by_id(node_id, timeout=timeout)
        if current is None:
            raise NodeNotFound(node_id)

        data = current.model_dump()
        data.update({k: v for k, v in partial.items() if k != "metadata"})
        data["metadata"].update(meta_changes)
        if "content" in partial:
            # Replacement content carries no copy of a sibling.
            data["metadata"]["overlap"] = 0
            data["token_count"] = estimate_tokens(data["content"])
        data["updated_at"] = utc_now()
        try:
            updated = ContextNode.model_validate(data)
        except ValidationError as exc:
            raise ValidationFailure(f"Invalid update for node {node_id!r}: {exc}") from exc

        _, document, meta = node_to_record(updated)
        await self._call(
            f"update context node {node_id}",
            self.collection.update,
            ids=[node_id],
            documents=[document] if "content" in partial else None,
            metadatas=[meta],
            timeout=timeout,
        )
        logger.info("Updated context node %s", node_id)
        return updated

    async def delete_by_context(self, context_id: str, timeout: float | None = None) -> int:
        """Delete every node derived from *context_id*; returns the count."""
        result = await self._call(
            f"find nodes of context {context_id}",
            self.collection.get,
            where={"original_context_id": context_id},
            include=["metadatas"],
            timeout=timeout,
        )
        ids = result["ids"]
        if ids:
            await self._call(
                f"delete nodes of context {context_id}",
                self.collection.delete,
                ids=ids,
                timeout=timeout,
            )
        logger.info("Deleted %d context node(s) for context %s", len(ids), context_id)
        return len(ids)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get_by_id(self, node_id: str, timeout: float | None = None) -> ContextNode | None:
        """Fetch a single node, or ``None`` when it does not exist."""
        result = await self._call(
            f"get context node {node_id}",
            self.collection.get,
            ids=[node_id],
            timeout=timeout,
        )
        nodes = _records_to_nodes(result)
        return nodes[0] if nodes else None

    async def get_by_context(self, context_id: str, timeout: float | None = None) -> list[ContextNode]:
        """All nodes of *context_id*, ordered by chunk index."""
        result = await self._call(
            f"get nodes of context {context_id}",
            self.collection.get,
            where={"original_context_id": context_id},
            timeout=timeout,
        )
        nodes = _records_to_nodes(result)
        nodes.sort(key=lambda n: n.metadata.chunk_index)
        return nodes

    async def list_by_type(
        self,
        chunk_type: str,
        limit: int = 100,
        timeout: float | None = None,
    ) -> list[ContextNode]:
        """Nodes of the given chunk type, newest first."""
        result = await self._call(
            f"list {chunk_type} context nodes",
            self.collection.get,
            where={"chunk_type": chunk_type},
            timeout=timeout,
        )
        nodes = _records_to_nodes(result)
        nodes.sort(key=lambda n: n.created_at, reverse=True)
        return nodes[:limit]

    async def search_by_text(
        self,
        query: str,
        limit: int = 20,
        timeout: float | None = None,
    ) -> list[ContextNode]:
        """
        Return up to *limit* nodes relevant to *query*.

        Only nodes whose content contains *query* are returned (as typed,
        lower-case, capitalized or upper-case), ranked best match first by
        the embedding index.  If the index query fails, matching falls back
        to a case-insensitive substring test over node content, in no
        particular order.
        """
        if limit < 1:
            raise ValidationFailure(f"Search limit must be positive, got {limit}")
        if not query.strip():
            return []

        where_document = _text_filter(query)
        try:
            matching = await self._call(
                "match context nodes",
                self.collection.get,
                where_document=where_document,
                include=[],
                timeout=timeout,
            )
            if not matching["ids"]:
                return []
            result = await self._call(
                "search context nodes",
                self.collection.query,
                query_texts=[query],
                n_results=min(limit, len(matching["ids"])),
                where_document=where_document,
                timeout=timeout,
            )
        except StoreTimeout:
            raise
        except StoreFailure as exc:
            logger.warning("Search index unavailable (%s); falling back to substring match", exc)
            return await self._substring_search(query, limit, timeout)

        return _records_to_nodes(
            {
                "ids": result["ids"][0],
                "documents": (result.get("documents") or [[]])[0],
                "metadatas": (result.get("metadatas") or [[]])[0],
            }
        )

    async def _substring_search(self, query: str, limit: int, timeout: float | None) -> list[ContextNode]:
        result = await self._call("scan context nodes", self.collection.get, timeout=timeout)
        needle = query.casefold()
        matches = [node for node in _records_to_nodes(result) if needle in node.content.casefold()]
        return matches[:limit]

    async def count(self, timeout: float | None = None) -> int:
        """Return the total number of stored nodes."""
        return await self._call("count context nodes", self.collection.count, timeout=timeout)

    async def all_metadata(self, timeout: float | None = None) -> list[dict[str, Any]]:
        """Metadata of every stored node."""
        result = await self._call(
            "read context node metadata",
            self.collection.get,
            include=["metadatas"],
            timeout=timeout,
        )
        return list(result.get("metadatas") or [])

    async def compute_stats(self, timeout: float | None = None) -> NodeStats:
        """Corpus-wide statistics; see :func:`context_nodes.stats.compute_stats`."""
        return compute_stats(await self.all_metadata(timeout=timeout))
