"""Track library endpoints: paginated listing, remote search, facets, detail and deletes."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.library.store import TrackStore
from app.meeting.search import sort_by_popularity
from app.routers.deps import get_track_store
from app.schemas.errors import ErrorResponse, error_response
from app.schemas.pagination import PaginatedResponse, PaginationMeta, clamp_page
from app.schemas.track import (
    DeleteResponse,
    FacetsResponse,
    TrackDetail,
    TrackInfo,
    TrackSearchResponse,
    TrackSearchResult,
)
from app.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tracks"])


@router.get(
    "/tracks",
    response_model=PaginatedResponse[TrackInfo],
    responses={401: {"model": ErrorResponse}, 422: {"description": "Validation error"}},
)
async def list_tracks(
    page: int = Query(default=1),
    pageSize: int = Query(default=50, alias="pageSize"),  # noqa: N803
    search: str | None = Query(default=None),
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> PaginatedResponse[TrackInfo]:
    """Return a newest-first page of the library, optionally filtered by title/artist."""
    page, page_size = clamp_page(page, pageSize)
    total_items, tracks = await store.list_page(
        search=search, limit=page_size, offset=(page - 1) * page_size
    )
    return PaginatedResponse[TrackInfo](
        data=[TrackInfo.model_validate(t) for t in tracks],
        pagination=PaginationMeta.for_page(page, page_size, total_items),
    )


@router.get(
    "/tracks/search",
    response_model=TrackSearchResponse,
    responses={401: {"model": ErrorResponse}},
)
async def search_tracks(
    q: str = Query(default=""),
    artist: str | None = Query(default=None),
    limit: int = Query(default=500, ge=1),
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> TrackSearchResponse:
    """Case-insensitive title/artist/album search, most-picked tracks first."""
    limit = min(limit, settings.search_result_limit)
    tracks = await store.search(q, artist=artist, limit=limit)
    counts = await store.selection_counts()
    ordered = sort_by_popularity(tracks, counts)
    return TrackSearchResponse(
        query=q,
        count=len(ordered),
        data=[
            TrackSearchResult.model_validate(t).model_copy(
                update={"selection_count": counts.get(t.id, 0)}
            )
            for t in ordered
        ],
    )


@router.get("/tracks/facets", response_model=FacetsResponse)
async def track_facets(
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> FacetsResponse:
    """Distinct genres and artists for the filter dropdowns."""
    genres, artists = await store.facets()
    return FacetsResponse(genres=genres, artists=artists)


@router.get(
    "/tracks/{track_id}",
    response_model=TrackDetail,
    responses={
        404: {"description": "Track not found", "model": ErrorResponse},
        422: {"description": "Validation error"},
    },
)
async def get_track(
    track_id: uuid.UUID,
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> TrackDetail | JSONResponse:
    track = await store.get(track_id)
    if track is None:
        return error_response(404, "NOT_FOUND", f"No track found with id {track_id}")
    return TrackDetail.model_validate(track)


@router.delete(
    "/tracks/{track_id}",
    response_model=DeleteResponse,
    responses={404: {"description": "Track not found", "model": ErrorResponse}},
)
async def delete_track(
    track_id: uuid.UUID,
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> DeleteResponse | JSONResponse:
    deleted = await store.delete_ids([track_id])
    if not deleted:
        return error_response(404, "NOT_FOUND", f"No track found with id {track_id}")
    return DeleteResponse(deleted=deleted)


@router.delete("/tracks", response_model=DeleteResponse)
async def delete_library(
    store: TrackStore = Depends(get_track_store),  # noqa: B008
) -> DeleteResponse:
    """Delete every track the caller owns."""
    deleted = await store.delete_all()
    logger.info("Deleted whole library of owner %s (%d tracks)", store.owner_id, deleted)
    return DeleteResponse(deleted=deleted)
