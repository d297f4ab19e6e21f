"""CLI entry point for importing a library export file.

Usage: uv run python -m app.ingest <export_file> --owner <uuid> [--strategy chunked|bulk]
"""

import argparse
import asyncio
import logging
import signal
import sys
import uuid
from pathlib import Path

from app.db.engine import engine
from app.db.session import async_session_factory
from app.ingest.pipeline import (
    EmptyImportError,
    ImportReport,
    import_bulk_then_fallback,
    import_chunked_parallel,
    parse_upload,
)
from app.library.parsers import dedupe_by_title
from app.library.store import StoreUnavailableError, TrackStore
from app.schemas.imports import ImportStrategy
from app.settings import settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app.ingest",
        description="Import a Rekordbox XML or tab-delimited library export.",
    )
    parser.add_argument("export_file", type=Path)
    parser.add_argument("--owner", type=uuid.UUID, required=True, help="Owner UUID")
    parser.add_argument(
        "--strategy",
        type=ImportStrategy,
        choices=list(ImportStrategy),
        default=ImportStrategy.CHUNKED,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and dedupe only; write nothing.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the import CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    args = _build_parser().parse_args(argv)
    if not args.export_file.is_file():
        print(f"Error: '{args.export_file}' is not a file", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    try:
        asyncio.run(_run_import(args.export_file, args.owner, args.strategy, args.dry_run))
    except EmptyImportError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)  # noqa: T201
        sys.exit(1)
    except StoreUnavailableError as exc:
        print(f"Error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(2)


async def _run_import(
    export_file: Path,
    owner_id: uuid.UUID,
    strategy: ImportStrategy,
    dry_run: bool,
) -> None:
    """Parse the export and write it to the owner's library."""
    log = logging.getLogger(__name__)

    candidates = parse_upload(
        export_file.name, export_file.read_bytes(), settings.min_sample_seconds
    )
    if dry_run:
        unique = list(dedupe_by_title(candidates))
        print(f"Parsed {len(candidates)} tracks, {len(unique)} after title dedupe")  # noqa: T201
        return

    store = TrackStore(async_session_factory, owner_id, settings.duplicate_key_separator)

    # Ctrl-C stops before the next wave instead of killing in-flight chunks
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        log.debug("Signal handlers unsupported on this platform; Ctrl-C aborts immediately")

    try:
        if strategy is ImportStrategy.BULK:
            report = await import_bulk_then_fallback(store, candidates)
        else:
            report = await import_chunked_parallel(
                store,
                candidates,
                chunk_size=settings.import_chunk_size,
                max_concurrency=settings.import_max_concurrency,
                cancel_event=cancel_event,
            )
    finally:
        await engine.dispose()

    _print_report(report)


def _print_report(report: ImportReport) -> None:
    print(f"\n{'=' * 60}")  # noqa: T201
    print("Import Report")  # noqa: T201
    print(f"{'=' * 60}")  # noqa: T201
    print(f"Total tracks: {report.total}")  # noqa: T201
    print(f"Imported:     {report.imported}")  # noqa: T201
    print(f"Skipped:      {report.skipped}")  # noqa: T201
    print(f"Errors:       {report.errors}")  # noqa: T201

    if report.error_details:
        print("\nFailed tracks:")  # noqa: T201
        for detail in report.error_details:
            print(f"  - {detail}")  # noqa: T201

    print(f"\n{report.summary(settings.summary_locale)}")  # noqa: T201
    print(f"{'=' * 60}")  # noqa: T201


if __name__ == "__main__":
    main()
