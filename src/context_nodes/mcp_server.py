"""
MCP (Model Context Protocol) server for context-nodes.

Exposes a ContextNodeManager as a set of tools so that an assistant can
store captured contexts as chunked nodes and search them later.

Run as a stdio server:
    python -m context_nodes.mcp_server

Or via the installed entry-point:
    context-nodes-mcp

Configuration comes from the ``CONTEXT_NODES_*`` environment variables
described in :mod:`context_nodes.config`.
"""

from __future__ import annotations

import json
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import configure_logging, get_settings
from .manager import ContextNodeManager
from .models import ContextNode

INSTRUCTIONS = (
    "Chunked, searchable storage for captured contexts. "
    "Use `convert_context` to store a conversation, code snippet or document; "
    "large contexts are split into nodes automatically. "
    "Use `search_context_nodes` to find relevant nodes before answering. "
    "Use `get_context_nodes` to read every node of one context in order, "
    "`get_nodes_by_type` to browse nodes of one kind, "
    "`delete_context_nodes` to drop a context's nodes and "
    "`context_node_stats` for an overview."
)


def _brief(node: ContextNode) -> dict:
    return {
        "id": node.id,
        "context_id": node.metadata.original_context_id,
        "chunk_index": node.metadata.chunk_index,
        "total_chunks": node.metadata.total_chunks,
        "chunk_type": node.metadata.chunk_type,
        "importance": round(node.importance, 4),
        "token_count": node.token_count,
        "summary": node.summary,
        "keywords": node.keywords,
        "content": node.content,
    }


class ContextNodeTools:
    """Tool implementations bound to one manager."""

    def __init__(self, manager: ContextNodeManager) -> None:
        self.manager = manager

    async def convert_context(
        self,
        context_id: str,
        content: str,
        context_type: str = "note",
        tags: Optional[list[str]] = None,
        complexity: Optional[str] = None,
        urgency: Optional[str] = None,
        importance: Optional[str] = None,
    ) -> str:
        """
        Store a context as one or more context nodes.

        Args:
            context_id:   Identifier of the context (node ids derive from it).
            content:      The captured text.
            context_type: code, documentation, research, conversation,
                          meeting, note, ...
            tags:         Optional tags; they seed every node's keywords.
            complexity:   Optional hint: low, medium or high.
            urgency:      Optional hint: low, medium or high.
            importance:   Optional hint: low, medium or high.

        Returns:
            A confirmation message with the stored node IDs.
        """
        hints = {
            k: v
            for k, v in (("complexity", complexity), ("urgency", urgency), ("importance", importance))
            if v
        }
        nodes = await self.manager.convert_context_to_nodes(
            {
                "id": context_id,
                "content": content,
                "type": context_type,
                "tags": tags or [],
                "metadata": hints,
            }
        )
        plural = "node" if len(nodes) == 1 else "nodes"
        return f"Stored {len(nodes)} context {plural}. IDs: {', '.join(n.id for n in nodes)}"

    async def get_context_nodes(self, context_id: str) -> str:
        """
        Return every node of a context in chunk order.

        Returns:
            JSON array of nodes, or a message when the context has none.
        """
        nodes = await self.manager.get_context_nodes(context_id)
        if not nodes:
            return f"No nodes stored for context {context_id}."
        return json.dumps([_brief(n) for n in nodes], indent=2)

    async def search_context_nodes(self, query: str, limit: int = 20) -> str:
        """
        Search stored nodes for text relevant to *query*.

        Args:
            query: Words or a phrase to look for.
            limit: Maximum number of nodes to return (default 20).

        Returns:
            JSON array of matching nodes.
        """
        nodes = await self.manager.search_context_nodes(query, limit=limit)
        if not nodes:
            return "No context nodes found."
        return json.dumps([_brief(n) for n in nodes], indent=2)

    async def get_nodes_by_type(self, chunk_type: str, limit: int = 100) -> str:
        """
        List nodes of one chunk type, newest first.

        Args:
            chunk_type: code, markdown, web_content, conversation, meeting
                        or text.
            limit:      Maximum number of nodes (default 100).
        """
        nodes = await self.manager.get_context_nodes_by_type(chunk_type, limit=limit)
        if not nodes:
            return f"No {chunk_type} nodes stored."
        return json.dumps([_brief(n) for n in nodes], indent=2)

    async def delete_context_nodes(self, context_id: str) -> str:
        """Delete every node derived from a context."""
        deleted = await self.manager.delete_context_nodes(context_id)
        return f"Deleted {deleted} node(s) for context {context_id}."

    async def context_node_stats(self) -> str:
        """Return node counts by type and token totals as JSON."""
        stats = await self.manager.get_context_node_stats()
        return json.dumps(stats.model_dump(), indent=2)


def build_server(manager: ContextNodeManager) -> FastMCP:
    """Create a FastMCP server whose tools operate on *manager*."""
    tools = ContextNodeTools(manager)
    server = FastMCP("context-nodes", instructions=INSTRUCTIONS)
    for tool in (
        tools.convert_context,
        tools.get_context_nodes,
        tools.search_context_nodes,
        tools.get_nodes_by_type,
        tools.delete_context_nodes,
        tools.context_node_stats,
    ):
        server.add_tool(tool)
    return server


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server over stdio."""
    settings = get_settings()
    configure_logging(settings.log_level)
    build_server(ContextNodeManager.from_settings(settings)).run(transport="stdio")


if __name__ == "__main__":
    main()
