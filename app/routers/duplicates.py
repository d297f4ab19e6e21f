"""Duplicate cleanup endpoints.

Exact mode deletes in one call. Fuzzy mode is a two-step review: fetch the
similar-title groups, then post back which members of each group to keep.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.dedup.engine import (
    DuplicateReview,
    InvalidResolutionError,
    delete_exact_duplicates,
    resolve_review,
    review_similar,
)
from app.library.store import TrackStore
from app.routers.deps import get_track_store
from app.schemas.duplicates import (
    DedupResponse,
    ResolveRequest,
    SimilarGroup,
    SimilarReviewResponse,
)
from app.schemas.errors import ErrorResponse, error_response
from app.schemas.track import TrackInfo
from app.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["duplicates"])


@router.post(
    "/duplicates/exact",
    response_model=DedupResponse,
    responses={409: {"description": "A delete batch failed", "model": ErrorResponse}},
)
async def remove_exact_duplicates(
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> DedupResponse:
    """Delete every track whose title+artist matches an older track."""
    result = await delete_exact_duplicates(
        store,
        separator=settings.duplicate_key_separator,
        page_size=settings.library_page_size,
        batch_size=settings.delete_batch_size,
    )
    return DedupResponse(
        scanned=result.scanned, deleted=result.deleted, library_count=result.library_count
    )


@router.get("/duplicates/similar", response_model=SimilarReviewResponse)
async def similar_title_groups(
    threshold: float | None = Query(default=None, ge=0.0, le=1.0),
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> SimilarReviewResponse:
    """Group tracks with similar titles; each group keeps its first member by default."""
    threshold = settings.similarity_threshold if threshold is None else threshold
    review = await review_similar(
        store, threshold=threshold, page_size=settings.library_page_size
    )
    return SimilarReviewResponse(
        threshold=threshold,
        scanned=review.scanned,
        groups=[
            SimilarGroup(
                track_ids=group.track_ids,
                keep_ids=[tid for tid in group.track_ids if tid in group.keep_ids],
                tracks=[TrackInfo.model_validate(t) for t in group.tracks],
            )
            for group in review.groups
        ],
    )


@router.post(
    "/duplicates/resolve",
    response_model=DedupResponse,
    responses={
        400: {"description": "A group keeps nothing or foreign tracks", "model": ErrorResponse},
        409: {"description": "A delete batch failed", "model": ErrorResponse},
    },
)
async def resolve_similar_groups(
    body: ResolveRequest,
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> DedupResponse | JSONResponse:
    """Delete every reviewed group member that is not in its keep-set."""
    try:
        review = DuplicateReview.from_resolution((g.track_ids, g.keep_ids) for g in body.groups)
    except InvalidResolutionError as exc:
        return error_response(400, "INVALID_RESOLUTION", str(exc))

    result = await resolve_review(store, review, batch_size=settings.delete_batch_size)
    return DedupResponse(
        scanned=result.scanned, deleted=result.deleted, library_count=result.library_count
    )
