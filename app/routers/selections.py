"""Client selection endpoints used during a meeting, plus M3U playlist export."""

from __future__ import annotations

import logging
import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from app.library.store import SelectionStore, TrackStore
from app.meeting.playlist import EmptySelectionError, NoPlayableTracksError, build_playlist
from app.meeting.search import filter_snapshot
from app.routers.deps import get_selection_store, get_track_store
from app.schemas.errors import ErrorResponse, error_response
from app.schemas.selection import SelectionResponse, ToggleResponse
from app.schemas.track import DeleteResponse, TrackInfo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["selections"])

_NOT_FOUND = {404: {"description": "Client or track not found", "model": ErrorResponse}}


def _client_not_found(client_id: uuid.UUID) -> JSONResponse:
    return error_response(404, "NOT_FOUND", f"No client found with id {client_id}")


@router.get(
    "/clients/{client_id}/selection",
    response_model=SelectionResponse,
    responses=_NOT_FOUND,
)
async def get_selection(
    client_id: uuid.UUID,
    q: str | None = Query(default=None),
    selection: SelectionStore = Depends(get_selection_store),  # noqa: B008
) -> SelectionResponse | JSONResponse:
    """Selected tracks in pick order, optionally narrowed by a local text match."""
    client = await selection.get_client()
    if client is None:
        return _client_not_found(client_id)

    tracks = await selection.list_tracks()
    if q:
        tracks = filter_snapshot(tracks, q)
    return SelectionResponse(
        client_id=client_id,
        playlist_name=client.playlist_name,
        count=len(tracks),
        tracks=[TrackInfo.model_validate(t) for t in tracks],
    )


@router.delete(
    "/clients/{client_id}/selection",
    response_model=DeleteResponse,
    responses=_NOT_FOUND,
)
async def clear_selection(
    client_id: uuid.UUID,
    selection: SelectionStore = Depends(get_selection_store),  # noqa: B008
) -> DeleteResponse | JSONResponse:
    if await selection.get_client() is None:
        return _client_not_found(client_id)
    return DeleteResponse(deleted=await selection.clear())


@router.post(
    "/clients/{client_id}/selection/{track_id}/toggle",
    response_model=ToggleResponse,
    responses=_NOT_FOUND,
)
async def toggle_selection(
    client_id: uuid.UUID,
    track_id: uuid.UUID,
    selection: SelectionStore = Depends(get_selection_store),  # noqa: B008
    tracks: TrackStore = Depends(get_track_store),  # noqa: B008
) -> ToggleResponse | JSONResponse:
    """Add the track to the client's selection, or remove it if already picked."""
    if await selection.get_client() is None:
        return _client_not_found(client_id)
    if await tracks.get(track_id) is None:
        return error_response(404, "NOT_FOUND", f"No track found with id {track_id}")

    selected_ids = await selection.selected_ids()
    if track_id in selected_ids:
        await selection.remove(track_id)
        selected_ids.discard(track_id)
        selected = False
    else:
        await selection.add(track_id)
        selected_ids.add(track_id)
        selected = True

    return ToggleResponse(track_id=track_id, selected=selected, count=len(selected_ids))


@router.get(
    "/clients/{client_id}/selection/playlist",
    response_class=Response,
    responses={
        200: {"content": {"audio/x-mpegurl": {}}, "description": "M3U playlist"},
        400: {"description": "Nothing to export", "model": ErrorResponse},
        **_NOT_FOUND,
    },
)
async def export_playlist(
    client_id: uuid.UUID,
    selection: SelectionStore = Depends(get_selection_store),  # noqa: B008
) -> Response:
    """Download the client's selection as an M3U playlist."""
    client = await selection.get_client()
    if client is None:
        return _client_not_found(client_id)

    try:
        playlist = build_playlist(client.playlist_name, await selection.list_tracks())
    except EmptySelectionError as exc:
        return error_response(400, "EMPTY_SELECTION", str(exc))
    except NoPlayableTracksError as exc:
        return error_response(400, "NO_FILE_LOCATIONS", str(exc))

    return Response(
        content=playlist.content,
        media_type=playlist.media_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(playlist.filename)}",
            "X-Playlist-Omitted": str(playlist.omitted),
        },
    )
