"""Import pipeline persisting parsed tracks into an owner's library.

Two strategies are provided:

1. ``import_bulk_then_fallback``: one multi-row insert; if it fails, every
   row is retried on its own and successes and failures are counted.
2. ``import_chunked_parallel``: in-batch title dedupe, fixed-size chunks and
   a bounded fan-out of chunk inserts. Inside a chunk, a failed bulk insert
   falls back to per-row inserts where uniqueness conflicts count as
   "skipped" and anything else as "error".

Per-row failures never abort sibling rows or chunks. Only
``StoreUnavailableError`` (the database is unreachable) propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from app.library.parsers import TrackCandidate, decode_upload, dedupe_by_title, parse_library_file
from app.library.store import ConflictError, StoreError, StoreUnavailableError, TrackStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100
DEFAULT_MAX_CONCURRENCY = 10
MAX_ERROR_DETAILS = 10

_SUMMARY_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "imported": "{imported} songs imported",
        "skipped": " ({skipped} duplicates skipped)",
        "errors": " ({errors} errors)",
        "cancelled": " (import cancelled)",
    },
    "he": {
        "imported": "{imported} שירים יובאו בהצלחה!",
        "skipped": " ({skipped} כפילויות דולגו)",
        "errors": " ({errors} שגיאות)",
        "cancelled": " (הייבוא בוטל)",
    },
}


class EmptyImportError(ValueError):
    """The uploaded export contained no usable tracks."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


@dataclass
class ImportReport:
    """Outcome counts of an import run."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)
    cancelled: bool = False

    def record_error(self, title: str, message: str) -> None:
        self.errors += 1
        if len(self.error_details) < MAX_ERROR_DETAILS:
            self.error_details.append(f"{title}: {message}")

    def merge(self, other: ImportReport) -> None:
        self.imported += other.imported
        self.skipped += other.skipped
        self.errors += other.errors
        room = MAX_ERROR_DETAILS - len(self.error_details)
        if room > 0:
            self.error_details.extend(other.error_details[:room])

    def summary(self, locale: str = "en") -> str:
        """Human-readable one-line summary in the requested locale."""
        messages = _SUMMARY_MESSAGES.get(locale, _SUMMARY_MESSAGES["en"])
        text = messages["imported"].format(imported=self.imported)
        if self.skipped:
            text += messages["skipped"].format(skipped=self.skipped)
        if self.errors:
            text += messages["errors"].format(errors=self.errors)
        if self.cancelled:
            text += messages["cancelled"]
        return text


def parse_upload(
    filename: str | None,
    data: bytes,
    min_sample_seconds: int,
) -> list[TrackCandidate]:
    """Decode and parse an uploaded export file.

    Raises:
        EmptyImportError: The file is empty or yields no tracks.
    """
    if not data:
        raise EmptyImportError("EMPTY_FILE", "Empty file uploaded.")
    text = decode_upload(data)
    candidates = list(parse_library_file(filename, text, min_sample_seconds=min_sample_seconds))
    if not candidates:
        raise EmptyImportError("NO_TRACKS", "No valid songs found in file.")
    logger.info("Parsed %d tracks from %s", len(candidates), filename or "<upload>")
    return candidates


async def import_bulk_then_fallback(
    store: TrackStore,
    candidates: Iterable[TrackCandidate],
) -> ImportReport:
    """Insert all candidates at once, falling back to one-by-one inserts.

    In this strategy every failed row, conflicts included, is an error.

    Raises:
        StoreUnavailableError: The record store could not be reached.
    """
    batch = list(candidates)
    report = ImportReport(total=len(batch))
    if not batch:
        return report

    try:
        report.imported = await store.insert_many(batch)
        return report
    except StoreError as exc:
        logger.warning(
            "Bulk insert of %d tracks failed (%s); inserting one at a time", len(batch), exc
        )

    for candidate in batch:
        try:
            await store.insert_one(candidate)
        except StoreError as exc:
            report.record_error(candidate.title, str(exc))
        else:
            report.imported += 1

    logger.info(
        "Bulk-then-fallback import: %d imported, %d errors (of %d)",
        report.imported,
        report.errors,
        report.total,
    )
    return report


async def _import_chunk(store: TrackStore, chunk: Sequence[TrackCandidate]) -> ImportReport:
    report = ImportReport(total=len(chunk))
    try:
        report.imported = await store.insert_many(chunk)
        return report
    except StoreError as exc:
        logger.debug("Chunk bulk insert failed (%s); retrying %d rows singly", exc, len(chunk))

    for candidate in chunk:
        try:
            await store.insert_one(candidate)
        except ConflictError:
            report.skipped += 1
        except StoreError as exc:
            report.record_error(candidate.title, str(exc))
        else:
            report.imported += 1
    return report


async def import_chunked_parallel(
    store: TrackStore,
    candidates: Iterable[TrackCandidate],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    cancel_event: asyncio.Event | None = None,
) -> ImportReport:
    """Import candidates in parallel chunks with per-chunk fallback.

    Steps:
    1. Drop in-batch repeats of a lower-cased title (counted as skipped)
    2. Split into ``chunk_size`` chunks
    3. Run up to ``max_concurrency`` chunks at once; wait for the whole wave
       to settle before starting the next one
    4. Aggregate per-chunk counts

    Setting ``cancel_event`` stops the import before the next wave. Already
    submitted chunks finish; cancelling the calling task cancels them too.

    Args:
        store: Record store bound to the importing owner.
        candidates: Parsed tracks in source order.
        chunk_size: Rows per bulk insert.
        max_concurrency: Chunks in flight at once.
        cancel_event: Optional event signalling that the caller went away.

    Returns:
        ImportReport with imported/skipped/errors totals.

    Raises:
        StoreUnavailableError: The record store could not be reached.
    """
    if chunk_size < 1 or max_concurrency < 1:
        raise ValueError("chunk_size and max_concurrency must be positive")

    parsed = list(candidates)
    unique = list(dedupe_by_title(parsed))
    report = ImportReport(total=len(parsed), skipped=len(parsed) - len(unique))

    chunks = [unique[i : i + chunk_size] for i in range(0, len(unique), chunk_size)]
    total_waves = -(-len(chunks) // max_concurrency)

    for wave_number, wave_start in enumerate(range(0, len(chunks), max_concurrency), 1):
        if cancel_event is not None and cancel_event.is_set():
            report.cancelled = True
            logger.info("Import cancelled before wave %d/%d", wave_number, total_waves)
            break

        wave = chunks[wave_start : wave_start + max_concurrency]
        logger.debug("Import wave %d/%d: %d chunks", wave_number, total_waves, len(wave))
        results = await asyncio.gather(
            *(_import_chunk(store, chunk) for chunk in wave),
            return_exceptions=True,
        )

        unavailable: StoreUnavailableError | None = None
        for chunk, result in zip(wave, results, strict=True):
            if isinstance(result, StoreUnavailableError):
                unavailable = result
            elif isinstance(result, asyncio.CancelledError):
                raise result
            elif isinstance(result, BaseException):
                logger.error("Import chunk of %d rows failed: %s", len(chunk), result)
                for candidate in chunk:
                    report.record_error(candidate.title, str(result))
            else:
                report.merge(result)
        if unavailable is not None:
            raise unavailable

    logger.info(
        "Chunked import complete: %d imported, %d skipped, %d errors (of %d total)",
        report.imported,
        report.skipped,
        report.errors,
        report.total,
    )
    return report
