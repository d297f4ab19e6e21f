"""Import endpoints: upload a DJ-software library export or send pre-parsed rows.

Uploads are parsed server-side (XML attribute blocks or tab-delimited text)
and written with the chunked-parallel strategy. JSON imports choose their
strategy. Every store access is scoped to the authenticated owner.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from app.ingest.compare import compare_with_library
from app.ingest.pipeline import (
    EmptyImportError,
    ImportReport,
    import_bulk_then_fallback,
    import_chunked_parallel,
    parse_upload,
)
from app.library.store import TrackStore
from app.routers.deps import get_track_store
from app.schemas.errors import ErrorResponse, error_response
from app.schemas.imports import (
    CompareResponse,
    ImportJsonRequest,
    ImportStrategy,
    ImportSummaryResponse,
    TrackCandidateIn,
)
from app.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["import"])

_ERROR_RESPONSES = {
    400: {"description": "Missing, empty, oversized or unusable file", "model": ErrorResponse},
    401: {"description": "Missing or invalid bearer token", "model": ErrorResponse},
    503: {"description": "Record store unavailable", "model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _summary(report: ImportReport) -> ImportSummaryResponse:
    return ImportSummaryResponse(
        total=report.total,
        imported=report.imported,
        skipped=report.skipped,
        errors=report.errors,
        error_details=report.error_details,
        cancelled=report.cancelled,
        message=report.summary(settings.summary_locale),
    )


async def _read_upload(file: UploadFile | None) -> bytes | JSONResponse:
    if file is None:
        return error_response(400, "NO_FILE", "No file uploaded.")
    content = await file.read()
    max_bytes = settings.max_upload_mb * 1024 * 1024
    if len(content) > max_bytes:
        return error_response(
            400,
            "FILE_TOO_LARGE",
            f"File too large. Maximum upload size is {settings.max_upload_mb} MB.",
        )
    return content


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/tracks/import",
    response_model=ImportSummaryResponse,
    responses=_ERROR_RESPONSES,
)
async def import_library_file(
    file: UploadFile | None = File(  # noqa: B008
        default=None,
        description="Library export: Rekordbox XML or tab-delimited text.",
    ),
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> ImportSummaryResponse | JSONResponse:
    """Parse an uploaded library export and import it in parallel chunks.

    1. Reject a missing, empty or oversized upload
    2. Parse by extension or XML declaration
    3. Drop in-file title repeats, then insert in chunks of
       ``IMPORT_CHUNK_SIZE`` with up to ``IMPORT_MAX_CONCURRENCY`` in flight
    """
    content = await _read_upload(file)
    if isinstance(content, JSONResponse):
        return content

    try:
        candidates = parse_upload(file.filename, content, settings.min_sample_seconds)
    except EmptyImportError as exc:
        return error_response(400, exc.code, exc.message)

    report = await import_chunked_parallel(
        store,
        candidates,
        chunk_size=settings.import_chunk_size,
        max_concurrency=settings.import_max_concurrency,
    )
    return _summary(report)


@router.post(
    "/tracks/import-json",
    response_model=ImportSummaryResponse,
    responses=_ERROR_RESPONSES,
)
async def import_parsed_tracks(
    body: ImportJsonRequest,
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> ImportSummaryResponse | JSONResponse:
    """Import rows a client already parsed, with the requested strategy.

    Rows whose title is blank after cleaning are counted as skipped.
    """
    candidates = [t.to_candidate() for t in body.tracks if t.title is not None]
    if not candidates:
        return error_response(400, "NO_TRACKS", "No tracks to import.")

    untitled = len(body.tracks) - len(candidates)
    if untitled:
        logger.info("Skipping %d untitled rows of a JSON import", untitled)

    if body.strategy is ImportStrategy.BULK:
        report = await import_bulk_then_fallback(store, candidates)
    else:
        report = await import_chunked_parallel(
            store,
            candidates,
            chunk_size=settings.import_chunk_size,
            max_concurrency=settings.import_max_concurrency,
        )
    report.total += untitled
    report.skipped += untitled
    return _summary(report)


@router.post(
    "/tracks/compare",
    response_model=CompareResponse,
    responses=_ERROR_RESPONSES,
)
async def compare_library_file(
    file: UploadFile | None = File(default=None),  # noqa: B008
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> CompareResponse | JSONResponse:
    """List tracks of an export file that have no title+artist match in the library."""
    content = await _read_upload(file)
    if isinstance(content, JSONResponse):
        return content

    try:
        candidates = parse_upload(file.filename, content, settings.min_sample_seconds)
    except EmptyImportError as exc:
        return error_response(400, exc.code, exc.message)

    comparison = await compare_with_library(
        store,
        candidates,
        separator=settings.duplicate_key_separator,
        page_size=settings.library_page_size,
    )
    return CompareResponse(
        file_count=comparison.file_count,
        library_count=comparison.library_count,
        missing_count=comparison.missing_count,
        missing=[TrackCandidateIn.from_candidate(c) for c in comparison.missing],
    )
