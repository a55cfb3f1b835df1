"""
Command-line interface for context-nodes.

Sub-commands
------------
convert  – Chunk a context and store its nodes.
nodes    – List the nodes of a context in chunk order.
get      – Show a single node.
search   – Search node content.
by-type  – List nodes of one chunk type, newest first.
delete   – Delete every node of a context.
stats    – Print corpus statistics.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from .config import configure_logging, get_settings
from .errors import ContextNodeError
from .manager import ContextNodeManager
from .models import ContextNode

_LEVELS = ("low", "medium", "high")


def _build_parser(defaults: Any) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="context-nodes",
        description="Chunk captured contexts into searchable context nodes.",
    )
    parser.add_argument(
        "--db",
        default=defaults.db_path,
        metavar="PATH",
        help=f"Path to the ChromaDB persistent store (default: {defaults.db_path}).",
    )
    parser.add_argument(
        "--collection",
        default=defaults.collection,
        metavar="NAME",
        help=f"ChromaDB collection name (default: {defaults.collection}).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # convert
    p_convert = sub.add_parser("convert", help="Convert a context into stored nodes.")
    p_convert.add_argument("text", nargs="?", help="Context content (reads stdin if omitted).")
    p_convert.add_argument("--id", required=True, dest="context_id", help="Context identifier.")
    p_convert.add_argument("--type", default="note", dest="context_type", help="Context type (default: note).")
    p_convert.add_argument("--tag", action="append", default=[], dest="tags", help="Tag; may be repeated.")
    for hint in ("complexity", "urgency", "importance"):
        p_convert.add_argument(f"--{hint}", choices=_LEVELS, default=None, help=f"{hint.capitalize()} hint.")
    p_convert.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        metavar="N",
        help="Maximum estimated tokens per chunk (default: 4000).",
    )
    p_convert.add_argument(
        "--split-turns",
        action="store_true",
        help="Start a new chunk at every turn of a conversation context.",
    )
    p_convert.add_argument("--json", action="store_true", dest="as_json", help="Output nodes as JSON.")

    # nodes
    p_nodes = sub.add_parser("nodes", help="List the nodes of a context.")
    p_nodes.add_argument("context_id", help="Context identifier.")
    p_nodes.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # get
    p_get = sub.add_parser("get", help="Show a node by ID.")
    p_get.add_argument("node_id", help="Node identifier.")

    # search
    p_search = sub.add_parser("search", help="Search node content.")
    p_search.add_argument("query", help="Search text.")
    p_search.add_argument(
        "-n",
        type=int,
        default=20,
        metavar="N",
        help="Number of results to return (default: 20).",
    )
    p_search.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # by-type
    p_type = sub.add_parser("by-type", help="List nodes of one chunk type.")
    p_type.add_argument("chunk_type", help="code, markdown, web_content, conversation, meeting or text.")
    p_type.add_argument(
        "--limit",
        type=int,
        default=100,
        metavar="N",
        help="Maximum number of nodes to show (default: 100).",
    )
    p_type.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # delete
    p_delete = sub.add_parser("delete", help="Delete every node of a context.")
    p_delete.add_argument("context_id", help="Context identifier.")

    # stats
    sub.add_parser("stats", help="Print node statistics as JSON.")

    return parser


def _dump(nodes: list[ContextNode]) -> str:
    return json.dumps([node.model_dump(mode="json") for node in nodes], indent=2)


def _print_nodes(nodes: list[ContextNode]) -> None:
    for node in nodes:
        meta = node.metadata
        print(
            f"id={node.id} chunk={meta.chunk_index + 1}/{meta.total_chunks} "
            f"type={meta.chunk_type} tokens={node.token_count} importance={node.importance:.2f}"
        )
        print(f"    {node.summary[:120]}")
        print()


async def _run(manager: ContextNodeManager, args: argparse.Namespace) -> int:
    if args.command == "convert":
        text = args.text
        if text is None:
            text = sys.stdin.read()
        if not text.strip():
            print("Error: no content provided.", file=sys.stderr)
            return 1
        hints = {h: getattr(args, h) for h in ("complexity", "urgency", "importance") if getattr(args, h)}
        strategy: dict[str, Any] = {"split_conversation_turns": args.split_turns}
        if args.max_tokens is not None:
            strategy["max_tokens"] = args.max_tokens
        nodes = await manager.convert_context_to_nodes(
            {
                "id": args.context_id,
                "content": text,
                "type": args.context_type,
                "tags": args.tags,
                "metadata": hints,
            },
            strategy,
        )
        if args.as_json:
            print(_dump(nodes))
        else:
            print(f"Stored {len(nodes)} node(s): {', '.join(n.id for n in nodes)}")

    elif args.command == "nodes":
        nodes = await manager.get_context_nodes(args.context_id)
        if not nodes:
            print("No nodes found.")
            return 0
        if args.as_json:
            print(_dump(nodes))
        else:
            _print_nodes(nodes)

    elif args.command == "get":
        node = await manager.get_context_node(args.node_id)
        if node is None:
            print(f"Error: node {args.node_id} not found.", file=sys.stderr)
            return 1
        print(json.dumps(node.model_dump(mode="json"), indent=2))

    elif args.command == "search":
        nodes = await manager.search_context_nodes(args.query, limit=args.n)
        if not nodes:
            print("No nodes found.")
            return 0
        if args.as_json:
            print(_dump(nodes))
        else:
            _print_nodes(nodes)

    elif args.command == "by-type":
        nodes = await manager.get_context_nodes_by_type(args.chunk_type, limit=args.limit)
        if not nodes:
            print("No nodes found.")
            return 0
        if args.as_json:
            print(_dump(nodes))
        else:
            _print_nodes(nodes)

    elif args.command == "delete":
        deleted = await manager.delete_context_nodes(args.context_id)
        print(f"Deleted {deleted} node(s) for context {args.context_id}.")

    elif args.command == "stats":
        stats = await manager.get_context_node_stats()
        print(json.dumps(stats.model_dump(), indent=2))

    return 0


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    parser = _build_parser(settings)
    args = parser.parse_args(argv)

    manager = ContextNodeManager(
        db_path=args.db,
        collection_name=args.collection,
        embedding_model=settings.embedding_model,
        chunk_threshold=settings.chunk_threshold,
        timeout=settings.store_timeout,
    )
    try:
        return asyncio.run(_run(manager, args))
    except ContextNodeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
