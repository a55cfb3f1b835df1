"""Tests for the MCP server tools."""

from __future__ import annotations

import json

import pytest

from context_nodes.errors import PartialConversion
from context_nodes.manager import ContextNodeManager
from context_nodes.mcp_server import ContextNodeTools, build_server


@pytest.fixture()
def tools(manager: ContextNodeManager) -> ContextNodeTools:
    """Tool implementations bound to a fresh in-memory manager."""
    return ContextNodeTools(manager)


@pytest.mark.asyncio
class TestMCPTools:
    async def test_stats_empty(self, tools: ContextNodeTools):
        stats = json.loads(await tools.context_node_stats())
        assert stats["total_nodes"] == 0

    async def test_convert_context_returns_confirmation(self, tools: ContextNodeTools):
        result = await tools.convert_context("mcp-1", "Alice likes Python.")
        assert result == "Stored 1 context node. IDs: mcp-1_node_0"

    async def test_convert_context_large(self, tools: ContextNodeTools):
        result = await tools.convert_context("mcp-big", "lorem ipsum dolor sit amet. " * 1000)
        assert result.startswith("Stored ")
        assert "context nodes." in result
        assert "mcp-big_node_1" in result

    async def test_convert_context_passes_hints(self, tools: ContextNodeTools, manager: ContextNodeManager):
        await tools.convert_context(
            "mcp-hints",
            "Rotate credentials.",
            context_type="code",
            tags=["security"],
            urgency="high",
        )
        node = await manager.get_context_node("mcp-hints_node_0")
        assert node.importance == pytest.approx(0.8)
        assert node.keywords[0] == "security"

    async def test_convert_context_twice_raises(self, tools: ContextNodeTools):
        await tools.convert_context("mcp-dup", "Once.")
        with pytest.raises(PartialConversion):
            await tools.convert_context("mcp-dup", "Once.")

    async def test_get_context_nodes_empty(self, tools: ContextNodeTools):
        assert await tools.get_context_nodes("missing") == "No nodes stored for context missing."

    async def test_get_context_nodes_returns_json(self, tools: ContextNodeTools):
        await tools.convert_context("mcp-get", "The sky is blue.")
        data = json.loads(await tools.get_context_nodes("mcp-get"))
        assert len(data) == 1
        assert data[0]["context_id"] == "mcp-get"
        assert data[0]["content"] == "The sky is blue."

    async def test_search_empty(self, tools: ContextNodeTools):
        assert await tools.search_context_nodes("anything") == "No context nodes found."

    async def test_search_limit(self, tools: ContextNodeTools):
        for i in range(6):
            await tools.convert_context(f"mcp-fact-{i}", f"Distinct fact number {i}.")
        data = json.loads(await tools.search_context_nodes("fact", limit=3))
        assert len(data) == 3

    async def test_get_nodes_by_type(self, tools: ContextNodeTools):
        await tools.convert_context("mcp-md", "# Heading\nBody text.")
        data = json.loads(await tools.get_nodes_by_type("markdown"))
        assert [n["id"] for n in data] == ["mcp-md_node_0"]
        assert await tools.get_nodes_by_type("meeting") == "No meeting nodes stored."

    async def test_delete_context_nodes(self, tools: ContextNodeTools):
        await tools.convert_context("mcp-del", "Delete this.")
        assert await tools.delete_context_nodes("mcp-del") == "Deleted 1 node(s) for context mcp-del."
        assert json.loads(await tools.context_node_stats())["total_nodes"] == 0


@pytest.mark.asyncio
class TestBuildServer:
    async def test_registers_all_tools(self, manager: ContextNodeManager):
        server = build_server(manager)
        names = {tool.name for tool in await server.list_tools()}
        assert names == {
            "convert_context",
            "get_context_nodes",
            "search_context_nodes",
            "get_nodes_by_type",
            "delete_context_nodes",
            "context_node_stats",
        }

    async def test_nodes_by_type_default_limit(self, manager: ContextNodeManager):
        server = build_server(manager)
        tools = {tool.name: tool for tool in await server.list_tools()}
        assert tools["get_nodes_by_type"].inputSchema["properties"]["limit"]["default"] == 100
