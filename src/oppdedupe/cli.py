"""CLI entrypoint for the opportunity deduplicator."""

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from oppdedupe.config.loader import (
    DEFAULT_CONFIG_PATH,
    DedupeConfig,
    get_sqlite_path,
    load_config,
    load_dedupe_config,
)
from oppdedupe.database.migrate import ensure_opportunity_columns
from oppdedupe.database.opportunity_repo import SqlRecordStore
from oppdedupe.database.sqlite_client import session_context
from oppdedupe.dedupe.engine import DuplicateDecisionEngine
from oppdedupe.dedupe.errors import DedupeError
from oppdedupe.dedupe.grouping import group_duplicates
from oppdedupe.dedupe.models import CandidateRecord
from oppdedupe.dedupe.reconciler import BatchReconciler, get_deduplication_stats
from oppdedupe.ingestion.ingestor import DiscoveryIngestor
from oppdedupe.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_STORE_ERROR = 1
EXIT_INVALID = 2


def _load_settings(args: argparse.Namespace) -> Tuple[DedupeConfig, str]:
    """Read config from --config, or the default file if present, else use defaults."""
    if args.config:
        config = load_config(Path(args.config))
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        config = {}
    return load_dedupe_config(config=config), get_sqlite_path(config)


def _read_json(path: str) -> Any:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def _read_candidates(path: str) -> List[CandidateRecord]:
    data = _read_json(path)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array of candidates in {path}")
    return [CandidateRecord.model_validate(item) for item in data]


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_check(args: argparse.Namespace) -> None:
    """Check one candidate against the store without writing."""
    dedupe_config, sqlite_path = _load_settings(args)
    candidate = CandidateRecord.model_validate(_read_json(args.file))
    ensure_opportunity_columns(sqlite_path)
    with session_context(sqlite_path) as session:
        engine = DuplicateDecisionEngine(SqlRecordStore(session), dedupe_config)
        decision = engine.check_duplicate(candidate)
    _print_json(decision.model_dump(mode="json"))


def cmd_ingest(args: argparse.Namespace) -> None:
    """Ingest a JSON array of discovered candidates."""
    dedupe_config, sqlite_path = _load_settings(args)
    candidates = _read_candidates(args.file)
    ensure_opportunity_columns(sqlite_path)
    with session_context(sqlite_path) as session:
        counts = DiscoveryIngestor(session, dedupe_config).ingest_many(candidates)
    _print_json(counts)


def cmd_group(args: argparse.Namespace) -> None:
    """Group in-batch duplicates without touching the store."""
    dedupe_config, _ = _load_settings(args)
    result = group_duplicates(_read_candidates(args.file), dedupe_config)
    _print_json(result.model_dump(mode="json"))


def cmd_reconcile(args: argparse.Namespace) -> None:
    """Run batch reconciliation over recently stored opportunities."""
    dedupe_config, sqlite_path = _load_settings(args)
    ensure_opportunity_columns(sqlite_path)
    with session_context(sqlite_path) as session:
        result = BatchReconciler(SqlRecordStore(session), dedupe_config).run_deduplication(
            batch_size=args.batch_size
        )
        session.commit()
    _print_json(result.model_dump(mode="json"))


def cmd_stats(args: argparse.Namespace) -> None:
    _, sqlite_path = _load_settings(args)
    ensure_opportunity_columns(sqlite_path)
    with session_context(sqlite_path) as session:
        stats = get_deduplication_stats(SqlRecordStore(session))
    _print_json(stats.model_dump(mode="json"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oppdedupe",
        description="Duplicate detection for discovered artist opportunities",
    )
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to YAML config (default: {DEFAULT_CONFIG_PATH} if present)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # check command
    check_parser = subparsers.add_parser("check", help="Check one candidate JSON object (read-only)")
    check_parser.add_argument("file", type=str, help="Path to a candidate JSON file")
    check_parser.set_defaults(func=cmd_check)

    # ingest command
    ingest_parser = subparsers.add_parser("ingest", help="Ingest a JSON array of candidates")
    ingest_parser.add_argument("file", type=str, help="Path to a JSON array of candidates")
    ingest_parser.set_defaults(func=cmd_ingest)

    # group command
    group_parser = subparsers.add_parser("group", help="Group duplicates within a batch (no store)")
    group_parser.add_argument("file", type=str, help="Path to a JSON array of candidates")
    group_parser.set_defaults(func=cmd_group)

    # reconcile command
    reconcile_parser = subparsers.add_parser("reconcile", help="Find and link duplicates among stored opportunities")
    reconcile_parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Number of most recent records to scan (default: 100)",
    )
    reconcile_parser.set_defaults(func=cmd_reconcile)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show deduplication stats")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return EXIT_OK

    try:
        args.func(args)
    except SQLAlchemyError as e:
        logger.error(f"Store error running command '{args.command}': {e}", exc_info=True)
        return EXIT_STORE_ERROR
    except (DedupeError, ValidationError, FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid input for command '{args.command}': {e}")
        print(f"Error: {e}")
        return EXIT_INVALID
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
