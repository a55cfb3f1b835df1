"""
Runtime configuration and logging setup.

Settings are read from environment variables prefixed ``CONTEXT_NODES_``
(or a local ``.env`` file):

    CONTEXT_NODES_DB_PATH          - ChromaDB store path (default: ~/.cache/context-nodes)
    CONTEXT_NODES_COLLECTION       - collection name (default: context_nodes)
    CONTEXT_NODES_EMBEDDING_MODEL  - sentence-transformers model (default: all-MiniLM-L6-v2)
    CONTEXT_NODES_CHUNK_THRESHOLD  - token estimate above which contexts are chunked (default: 4000)
    CONTEXT_NODES_STORE_TIMEOUT    - seconds before a store call fails (default: 30)
    CONTEXT_NODES_LOG_LEVEL        - logging level (default: INFO)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .tokens import CHUNK_THRESHOLD

_DEFAULT_DB_PATH = str(Path.home() / ".cache" / "context-nodes")


class Settings(BaseSettings):
    """Configuration for the node store and its entry points."""

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_NODES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    db_path: str = Field(default=_DEFAULT_DB_PATH, description="ChromaDB persistent store path")
    collection: str = Field(default="context_nodes", description="ChromaDB collection name")
    embedding_model: str = Field(
        default="all-MiniLM-L6-v2",
        description="sentence-transformers model used by the search index",
    )
    chunk_threshold: int = Field(
        default=CHUNK_THRESHOLD,
        ge=1,
        description="Estimated token count above which a context is chunked",
    )
    store_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds a single store call may take before failing",
    )
    log_level: str = Field(default="INFO", description="Logging level")


def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr with timestamps; quiet noisy libraries."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout is reserved for command output and the MCP stdio transport.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)

    for noisy in ("chromadb", "httpx", "urllib3", "sentence_transformers"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
