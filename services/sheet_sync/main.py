"""
CLI entry point for the Sheet Sync service.

Usage:
    python -m services.sheet_sync
    python -m services.sheet_sync --log-format text --log-level DEBUG
    python -m services.sheet_sync --summary-file data/sheet_sync/summary.json
    python -m services.sheet_sync --lookup S1
    python -m services.sheet_sync --search S1

Exit codes: 0 when the run completes (rows skipped for a missing
register_no included), 1 on any configuration, fetch, parse or
persistence error.
"""

import argparse
import json
import sys
from typing import List, Optional

from services._common.log_config import configure_logging, get_logger
from . import __version__
from .orchestrator import SheetSyncOrchestrator
from .report import write_summary
from .settings import ConfigurationError, SheetSyncSettings, load_settings
from .store import PersistenceError, StudentStore, create_store

logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Sheet Sync - mirror a Google Sheet into the students table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m services.sheet_sync
  python -m services.sheet_sync --log-format text
  python -m services.sheet_sync --summary-file sync-summary.json
  python -m services.sheet_sync --search 21CS
        """
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration"
    )

    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        help="Override log format from configuration"
    )

    parser.add_argument(
        "--summary-file",
        type=str,
        help="Also write the run summary as JSON to this path"
    )

    reads = parser.add_mutually_exclusive_group()
    reads.add_argument(
        "--lookup",
        metavar="REGISTER_NO",
        help="Print one stored student and exit (no sync)"
    )
    reads.add_argument(
        "--search",
        metavar="QUERY",
        help="Print stored students whose register_no contains QUERY and exit (no sync)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Sheet Sync {__version__}"
    )

    return parser


def run_lookup(store: StudentStore, register_no: Optional[str], query: Optional[str]) -> int:
    """Read-only access to the store, as the dashboard does it."""
    if register_no is not None:
        student = store.get_student(register_no)
        if student is None:
            logger.warning("Student not found", register_no=register_no)
            return 1
        print(json.dumps(student, indent=2, default=str, ensure_ascii=False))
        return 0

    students = store.search_students(query or "")
    print(json.dumps(students, indent=2, default=str, ensure_ascii=False))
    return 0


def run_sync(settings: SheetSyncSettings, store: StudentStore, summary_file: Optional[str] = None) -> int:
    """Run one sync and report the outcome."""
    result = SheetSyncOrchestrator(settings, store).run()

    if not result.succeeded:
        logger.error(
            "Sync failed",
            state=result.failed_state.value if result.failed_state else None,
            error_kind=result.error_kind.value if result.error_kind else None,
            error=str(result.error),
        )
        return result.exit_code

    print(result.summary.to_json())
    if summary_file:
        path = write_summary(result.summary, summary_file)
        logger.info("Summary written", path=str(path))

    logger.info("Sync completed successfully")
    return result.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = create_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        configure_logging(args.log_level or "INFO", args.log_format or "json", service_name="sheet-sync")
        logger.error("Configuration error", error=str(e))
        return 1

    configure_logging(
        args.log_level or settings.log_level,
        args.log_format or settings.log_format,
        service_name=settings.service_name,
        environment=settings.environment,
    )
    logger.info(
        "Service starting",
        service_name=settings.service_name,
        version=__version__,
        environment=settings.environment,
    )

    store = create_store(settings)
    try:
        if args.lookup is not None or args.search is not None:
            return run_lookup(store, args.lookup, args.search)
        return run_sync(settings, store, args.summary_file)
    except PersistenceError as e:
        logger.error("Store access failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Service interrupted by user")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
