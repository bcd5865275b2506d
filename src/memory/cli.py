"""
Maintenance commands for the memory database.

    python -m src.memory.cli check
    python -m src.memory.cli list --platform telegram
    python -m src.memory.cli show alice-telegram --limit 20
    python -m src.memory.cli history alice-telegram
    python -m src.memory.cli delete alice-telegram
    python -m src.memory.cli delete-history alice-telegram

Results are printed as JSON. Store logging stays quiet unless --verbose is
given; store errors go to stderr with exit status 1.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from src.utils.logging import get_logger

from .errors import MemoryStoreError
from .sqlite_store import SQLiteMemoryStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.memory.cli",
        description="Inspect and maintain the conversational memory database",
    )
    parser.add_argument("--db", type=Path, default=None, help="SQLite file (default: configured path)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log store activity at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", help="Open the store and run the health check")

    p_list = sub.add_parser("list", help="List conversations, newest first")
    p_list.add_argument("--user", default=None)
    p_list.add_argument("--platform", default=None)

    p_show = sub.add_parser("show", help="Show a conversation with messages and contexts")
    p_show.add_argument("conversation_id")
    p_show.add_argument("--limit", type=int, default=None, help="Only the N most recent messages")

    p_hist = sub.add_parser("history", help="Show the history log of a conversation")
    p_hist.add_argument("conversation_id")

    p_del = sub.add_parser("delete", help="Delete a conversation with its messages and contexts")
    p_del.add_argument("conversation_id")

    p_dh = sub.add_parser("delete-history", help="Delete the history log of a conversation")
    p_dh.add_argument("conversation_id")

    return parser


def _run(store: SQLiteMemoryStore, args: argparse.Namespace) -> object:
    if args.command == "check":
        return {"db_path": str(store.db_path), "status": "healthy"}
    if args.command == "list":
        return [c.model_dump() for c in store.list_conversations(args.user, args.platform)]
    if args.command == "show":
        conversation = store.get_conversation(args.conversation_id)
        if args.limit is not None:
            conversation.messages = store.get_messages(
                {"conversation_id": args.conversation_id, "limit": args.limit}
            )
        return conversation.model_dump()
    if args.command == "history":
        return [h.model_dump() for h in store.get_history(args.conversation_id)]
    if args.command == "delete":
        store.delete_conversation(args.conversation_id)
        return {"conversation_id": args.conversation_id, "status": "deleted"}
    if args.command == "delete-history":
        removed = store.delete_history(args.conversation_id)
        return {"conversation_id": args.conversation_id, "removed": removed, "status": "cleared"}
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logger = get_logger(__name__, logging.INFO if args.verbose else logging.WARNING)
    try:
        with SQLiteMemoryStore(db_path=args.db, logger=logger) as store:
            result = _run(store, args)
    except MemoryStoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
