"""Administrative command-line tool for the marketplace database.

Runs the system-driven operations that have no HTTP route: the listing
expiry sweep, expiring a single offer, reading an offer's negotiation
history, and hard-deleting a listing.  Output formats: table (default) or
JSON.

Usage::

    marketplace-admin expire-due
    marketplace-admin expire-offer 3f2a... --format json
    marketplace-admin history 3f2a... --db data/marketplace.db
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog

from marketplace.domain.errors import MarketplaceError, NotFoundError
from marketplace.listings import ListingLifecycle
from marketplace.offers import OfferEngine
from marketplace.store import MarketplaceStore, open_database


def _stderr_logger(*_args: Any) -> structlog.PrintLogger:
    return structlog.PrintLogger(file=sys.stderr)


def configure_cli_logging() -> None:
    """Route structlog output to stderr so stdout carries only command results.

    The logger factory looks up ``sys.stderr`` on every call, and loggers are
    not cached.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the admin commands.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="marketplace-admin", description="Marketplace maintenance commands"
    )
    parser.add_argument(
        "--db",
        type=str,
        default="data/marketplace.db",
        help="Path to marketplace database (default: data/marketplace.db)",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("expire-due", help="Expire listings whose expiry time has passed")

    expire_offer = commands.add_parser("expire-offer", help="Expire a pending offer")
    expire_offer.add_argument("offer_id")

    history = commands.add_parser("history", help="Show an offer's negotiation history")
    history.add_argument("offer_id")

    delete = commands.add_parser("delete-sell-post", help="Delete a listing and its offers")
    delete.add_argument("sell_post_id")

    return parser


def format_table(rows: list[dict[str, Any]], columns: list[tuple[str, int]]) -> str:
    """Format *rows* as a fixed-width table.

    Args:
        rows: Dicts keyed by column name.
        columns: ``(name, width)`` pairs; longer values are truncated.

    Returns:
        Formatted table string with header row.
    """
    if not rows:
        return "No results found."

    def truncate(value: Any, width: int) -> str:
        s = "" if value is None else str(value)
        if len(s) > width:
            return s[: width - 3] + "..."
        return s

    header_line = "  ".join(name.ljust(width) for name, width in columns)
    lines = [header_line, "-" * len(header_line)]
    for row in rows:
        lines.append(
            "  ".join(truncate(row.get(name), width).ljust(width) for name, width in columns)
        )
    return "\n".join(lines)


def format_json(rows: list[dict[str, Any]]) -> str:
    """Format *rows* as pretty-printed JSON."""
    return json.dumps(rows, indent=2)


_LISTING_COLUMNS = [("id", 32), ("title", 30), ("status", 10), ("updated_at", 27)]
_OFFER_COLUMNS = [("id", 32), ("buyer_id", 20), ("offered_price", 12), ("status", 10)]
_HISTORY_COLUMNS = [
    ("created_at", 27),
    ("from_status", 10),
    ("to_status", 10),
    ("actor_id", 20),
    ("price", 12),
    ("note", 30),
]


def run(args: argparse.Namespace, store: MarketplaceStore) -> tuple[list[dict[str, Any]], list]:
    """Execute the parsed command against *store*.

    Returns:
        The result rows and the table columns used to display them.
    """
    lifecycle = ListingLifecycle(store)
    if args.command == "expire-due":
        posts = lifecycle.expire_due()
        return [p.model_dump(mode="json") for p in posts], _LISTING_COLUMNS
    if args.command == "expire-offer":
        offer = OfferEngine(store, lifecycle).expire_offer(args.offer_id)
        return [offer.model_dump(mode="json")], _OFFER_COLUMNS
    if args.command == "history":
        if store.get_offer(args.offer_id) is None:
            raise NotFoundError("offer", args.offer_id)
        entries = store.list_history(args.offer_id)
        return [e.model_dump(mode="json") for e in entries], _HISTORY_COLUMNS
    lifecycle.delete_sell_post(args.sell_post_id)
    return [{"id": args.sell_post_id, "status": "deleted"}], [("id", 32), ("status", 10)]


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the command, and print the results.

    Returns:
        Process exit code: 0 on success, 1 on a domain error.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_cli_logging()

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store = MarketplaceStore(open_database(db_path))

    try:
        rows, columns = run(args, store)
    except MarketplaceError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()

    output = format_json(rows) if args.output_format == "json" else format_table(rows, columns)
    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
