from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from directory_sync.app import cancel_sync, run_sync
from directory_sync.common.logging import configure_logging
from directory_sync.config import ConfigurationError
from directory_sync.domain.errors import MissingCursorError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="directory-sync",
        description="Synchronise the Query Directory with the admin directories",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-f",
        "--full",
        action="store_true",
        help="Rebuild the Query Directory from every organization the Registry lists",
    )
    mode.add_argument(
        "--since",
        type=str,
        help="ISO-8601 timestamp (UTC if no offset) overriding the persisted cursors",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output, including HTTP traffic",
    )
    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        since = _parse_iso_datetime(parsed_args.since) if parsed_args.since else None
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        report = run_sync(full=parsed_args.full, since=since)
    except MissingCursorError as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(1)
    except ConfigurationError:
        log.exception("Invalid configuration")
        sys.exit(1)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(1)

    if report.cancelled:
        log.info("Sync cancelled before completion")
    elif not report.succeeded:
        log.warning(
            "Sync finished with skipped units: organizations %s, sources %s",
            ", ".join(report.organizations_failed) or "none",
            ", ".join(report.sources_failed) or "none",
        )


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C): stop between units first, exit on the second press."""
    if cancel_sync():
        log.info("Stopping after the current units (Ctrl+C again to abort)")
        signal(SIGINT, _abort_handler)
        return
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def _abort_handler(_signal_received: int, _frame: FrameType | None) -> None:
    log.info("Closed by user (Ctrl+C)")
    sys.exit(130)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
