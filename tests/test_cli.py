"""Tests for the CLI entry point."""

from __future__ import annotations

import io
import json

import pytest

from context_nodes.cli import main
from context_nodes.manager import ContextNodeManager
from context_nodes.store import NodeStore

LONG_TEXT = "lorem ipsum dolor sit amet. " * 1000


@pytest.fixture()
def patched_manager(node_store: NodeStore, monkeypatch) -> ContextNodeManager:
    """
    Patch ContextNodeManager.__init__ so the CLI uses our ephemeral in-memory
    store instead of touching the filesystem.
    """
    manager = ContextNodeManager(_store=node_store)

    def _fake_init(self, **kwargs):  # noqa: ARG001
        self._store = node_store
        self.chunk_threshold = 4000

    monkeypatch.setattr(ContextNodeManager, "__init__", _fake_init)
    return manager


class TestCLI:
    def test_stats_empty(self, patched_manager, capsys):
        rc = main(["stats"])
        assert rc == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats == {"total_nodes": 0, "nodes_by_type": {}, "average_tokens": 0, "total_tokens": 0}

    def test_convert_small_context(self, patched_manager, capsys):
        rc = main(["convert", "--id", "cli-1", "A note from the CLI test."])
        assert rc == 0
        out = capsys.readouterr().out
        assert "Stored 1 node(s): cli-1_node_0" in out

    def test_convert_reads_stdin(self, patched_manager, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("Piped context content."))
        rc = main(["convert", "--id", "cli-stdin"])
        assert rc == 0
        assert "cli-stdin_node_0" in capsys.readouterr().out

    def test_convert_missing_text_returns_error(self, patched_manager, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        rc = main(["convert", "--id", "cli-empty"])
        assert rc == 1
        assert "no content" in capsys.readouterr().err

    def test_convert_large_context_json(self, patched_manager, capsys):
        rc = main(["convert", "--id", "cli-big", "--type", "research", "--tag", "latin", "--json", LONG_TEXT])
        assert rc == 0
        nodes = json.loads(capsys.readouterr().out)
        assert len(nodes) > 1
        assert all(n["metadata"]["total_chunks"] == len(nodes) for n in nodes)
        assert all(n["keywords"][0] == "latin" for n in nodes)

    def test_convert_max_tokens(self, patched_manager, capsys):
        main(["convert", "--id", "cli-small-chunks", "--max-tokens", "1000", "--json", LONG_TEXT])
        nodes = json.loads(capsys.readouterr().out)
        assert all(n["token_count"] <= 1000 for n in nodes)

    def test_convert_twice_reports_error(self, patched_manager, capsys):
        main(["convert", "--id", "cli-dup", "Duplicate me."])
        capsys.readouterr()
        rc = main(["convert", "--id", "cli-dup", "Duplicate me."])
        assert rc == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_nodes_empty(self, patched_manager, capsys):
        rc = main(["nodes", "unknown"])
        assert rc == 0
        assert "No nodes found." in capsys.readouterr().out

    def test_convert_and_list_nodes(self, patched_manager, capsys):
        main(["convert", "--id", "cli-list", "Something to list."])
        capsys.readouterr()
        rc = main(["nodes", "cli-list", "--json"])
        assert rc == 0
        nodes = json.loads(capsys.readouterr().out)
        assert [n["content"] for n in nodes] == ["Something to list."]

    def test_get_node(self, patched_manager, capsys):
        main(["convert", "--id", "cli-get", "Fetch me by id."])
        capsys.readouterr()
        rc = main(["get", "cli-get_node_0"])
        assert rc == 0
        assert json.loads(capsys.readouterr().out)["content"] == "Fetch me by id."

    def test_get_missing_node(self, patched_manager, capsys):
        rc = main(["get", "nothing_node_0"])
        assert rc == 1
        assert "not found" in capsys.readouterr().err

    def test_search(self, patched_manager, capsys):
        main(["convert", "--id", "cli-search", "The deploy pipeline runs nightly."])
        capsys.readouterr()
        rc = main(["search", "--json", "deploy"])
        assert rc == 0
        results = json.loads(capsys.readouterr().out)
        assert results[0]["id"] == "cli-search_node_0"

    def test_by_type(self, patched_manager, capsys):
        main(["convert", "--id", "cli-code", "A function that returns nothing."])
        main(["convert", "--id", "cli-text", "Plain prose."])
        capsys.readouterr()
        rc = main(["by-type", "code", "--json"])
        assert rc == 0
        nodes = json.loads(capsys.readouterr().out)
        assert [n["id"] for n in nodes] == ["cli-code_node_0"]

    def test_convert_and_delete(self, patched_manager, capsys):
        main(["convert", "--id", "cli-del", "To be deleted via CLI."])
        capsys.readouterr()
        rc = main(["delete", "cli-del"])
        assert rc == 0
        assert "Deleted 1 node(s) for context cli-del." in capsys.readouterr().out

        main(["stats"])
        assert json.loads(capsys.readouterr().out)["total_nodes"] == 0
