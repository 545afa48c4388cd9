"""
ERP Warehouse ETL - command line entry point.

Exit codes:
    0  the run completed (or failed after startup without --strict)
    1  startup failed (configuration, logging, warehouse), or the run
       failed and --strict was given
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from erp_etl.config.logging import configure_logging
from erp_etl.config.settings import Settings, get_settings
from erp_etl.etl.orchestrator import EtlOrchestrator, RunResult
from erp_etl.source import create_source_reader
from erp_etl.warehouse.connection import close_database, create_schema, init_database
from erp_etl.warehouse.repository import WarehouseRepository

logger = structlog.get_logger(__name__)


async def run_pipeline(settings: Settings, ensure_schema: bool = False) -> RunResult:
    """
    Wire the configured source to the warehouse and execute one run.

    Warehouse initialization errors propagate; everything after that is
    reported through the returned RunResult.

    Args:
        settings: Application settings
        ensure_schema: Create missing warehouse tables before the run

    Returns:
        RunResult: Outcome of the run
    """
    reader = create_source_reader(settings.source)

    await init_database(settings.warehouse)
    try:
        if ensure_schema:
            await create_schema()

        repository = WarehouseRepository()
        orchestrator = EtlOrchestrator(
            reader,
            resolver=repository,
            dates=repository,
            loader=repository,
            batch_size=settings.etl.batch_size,
        )
        return await orchestrator.run()
    finally:
        await close_database()


def format_error_chain(error: BaseException) -> List[str]:
    """Render an exception and every exception it was caused by."""
    lines = []
    seen = set()
    current: Optional[BaseException] = error
    depth = 0
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        prefix = "Error" if depth == 0 else "Caused by"
        lines.append(f"{'  ' * depth}{prefix}: {type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__
        depth += 1
    return lines


def _print_fatal(error: BaseException) -> None:
    print("Fatal error, the ETL did not run.", file=sys.stderr)
    for line in format_error_chain(error):
        print(line, file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="erp-etl",
        description="Load ERP dimensions and facts into the star-schema warehouse",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing warehouse tables before loading",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Read from the built-in mock ERP instead of the COM connector",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when the run does not succeed",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
        if args.mock:
            settings = settings.model_copy(
                update={"source": settings.source.model_copy(update={"backend": "mock"})}
            )
        configure_logging(args.log_level)
    except Exception as e:
        _print_fatal(e)
        return 1

    try:
        result = asyncio.run(run_pipeline(settings, ensure_schema=args.create_schema))
    except Exception as e:
        logger.critical("ETL startup failed", error=str(e), exc_info=True)
        _print_fatal(e)
        return 1

    if args.strict and not result.ok:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
