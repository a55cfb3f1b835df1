"""
Shared pytest fixtures for context-nodes tests.

Uses ChromaDB in ephemeral (in-memory) mode and a deterministic
fake embedding function so that tests run fast without downloading
any ML models.
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from typing import Any

import chromadb
import pytest

from context_nodes.manager import ContextNodeManager
from context_nodes.models import Context
from context_nodes.store import NodeStore


class FakeEmbeddingFunction:
    """
    Deterministic embedding function that maps text to a unit vector
    derived from its MD5 hash.  Fast and reproducible – no model download.
    Implements both the legacy ``__call__`` interface and the newer
    ``embed_documents`` / ``embed_query`` interface used by ChromaDB ≥ 0.5.
    """

    def name(self) -> str:  # required by ChromaDB >= 0.5
        return "fake-md5-embedding"

    def _embed(self, texts: list[str]) -> list[list[float]]:
        embeddings = []
        for text in texts:
            digest = hashlib.md5(text.encode()).digest()
            # 16-byte digest → 16-dim float vector in [-1, 1]
            vec = [(b - 128) / 128.0 for b in digest]
            norm = sum(x * x for x in vec) ** 0.5 or 1.0
            embeddings.append([x / norm for x in vec])
        return embeddings

    def __call__(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        return self._embed(input)

    def embed_documents(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        return self._embed(input)

    def embed_query(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        return self._embed(input)


class BrokenQueryCollection:
    """Wraps a collection whose embedding index cannot be queried."""

    def __init__(self, collection: Any) -> None:
        self._collection = collection

    def query(self, *args: Any, **kwargs: Any) -> Any:
        raise RuntimeError("text index unavailable")

    def __getattr__(self, name: str) -> Any:
        return getattr(self._collection, name)


class SlowCollection:
    """Wraps a collection whose ``count`` hangs longer than any test timeout."""

    def __init__(self, collection: Any, delay: float = 0.5) -> None:
        self._collection = collection
        self._delay = delay

    def count(self) -> int:
        time.sleep(self._delay)
        return self._collection.count()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._collection, name)


def make_context(content: str = "A short note about nothing much.", **overrides: Any) -> Context:
    fields: dict[str, Any] = {"id": f"ctx-{uuid.uuid4().hex[:8]}", "content": content, "type": "note"}
    fields.update(overrides)
    return Context(**fields)


# A single shared EphemeralClient instance for the test session.
# Each fixture call creates a uniquely named collection so tests are isolated.
_EPHEMERAL_CLIENT = chromadb.EphemeralClient()


def new_store(timeout: float = 5.0) -> NodeStore:
    return NodeStore(
        _client=_EPHEMERAL_CLIENT,
        collection_name=f"test_{uuid.uuid4().hex}",
        timeout=timeout,
        _embedding_function=FakeEmbeddingFunction(),
    )


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo ``configure_logging`` calls made by the CLI and config tests."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def node_store() -> NodeStore:
    """In-memory NodeStore with the fake embedding function.

    A unique collection name is used per fixture invocation so that tests
    cannot interfere with each other despite sharing the same EphemeralClient.
    """
    return new_store()


@pytest.fixture()
def manager(node_store: NodeStore) -> ContextNodeManager:
    """ContextNodeManager wired to the ephemeral in-memory store."""
    return ContextNodeManager(_store=node_store)
