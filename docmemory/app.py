"""
docmemory Command-Line Entry Point

Runs vector store tool calls from a terminal against the configured data
directory. Each sub-command builds the same JSON request the chat layer
sends, runs it through the tool surface and prints the JSON reply.

Typical Usage:
	$ python -m docmemory.app store ./report.pdf --user alice
	$ python -m docmemory.app search "quarterly revenue" --user alice --limit 3
	$ python -m docmemory.app list --user alice
	$ python -m docmemory.app delete 3f2a... --user alice
	$ python -m docmemory.app stats
"""

from __future__ import annotations

import argparse
import json
import logging as py_logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import load_config
from .logging import init_logging
from .memory.service import DocumentMemoryService
from .memory.tool import execute


log = py_logging.getLogger("docmemory.app")


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="docmemory", description="Per-user document memory")
	sub = parser.add_subparsers(dest="command", required=True)

	store = sub.add_parser("store", help="Ingest a document")
	store.add_argument("path", type=Path, help="File to ingest")
	store.add_argument("--name", help="Original file name (default: the file's own name)")
	store.add_argument("--user", required=True)

	search = sub.add_parser("search", help="Search a user's documents")
	search.add_argument("query")
	search.add_argument("--limit", type=int, default=5)
	search.add_argument("--user", required=True)

	listing = sub.add_parser("list", help="List a user's documents")
	listing.add_argument("--user", required=True)

	delete = sub.add_parser("delete", help="Delete a document")
	delete.add_argument("document_id")
	delete.add_argument("--user", required=True)

	sub.add_parser("stats", help="Show store statistics")
	return parser


def _request_for(args: argparse.Namespace) -> Dict[str, Any]:
	if args.command == "store":
		return {
			"operation": "store",
			"userId": args.user,
			"filePath": str(args.path),
			"originalName": args.name or args.path.name,
		}
	if args.command == "search":
		return {"operation": "search", "userId": args.user, "query": args.query, "limit": args.limit}
	if args.command == "list":
		return {"operation": "list", "userId": args.user}
	return {"operation": "delete", "userId": args.user, "documentId": args.document_id}


def main(argv: Optional[List[str]] = None) -> None:
	"""
	Main entry point.

	Loads configuration, initializes logging, opens the store, runs one
	command and persists the index before exiting.
	"""
	args = _build_parser().parse_args(argv)

	cfg = load_config()
	init_logging(cfg.log_level, cfg.log_file)
	log.info("docmemory starting with data directory %s", cfg.data_dir)

	service = DocumentMemoryService.from_config(cfg)
	try:
		if args.command == "stats":
			print(json.dumps(service.get_stats(), indent=2))
		else:
			print(execute(service, _request_for(args)))
	finally:
		service.flush()


if __name__ == "__main__":
	main()
