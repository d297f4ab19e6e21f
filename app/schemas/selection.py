from __future__ import annotations

import uuid

from pydantic import BaseModel

from app.schemas.track import TrackInfo


class SelectionResponse(BaseModel):
    client_id: uuid.UUID
    playlist_name: str
    count: int
    tracks: list[TrackInfo]


class ToggleResponse(BaseModel):
    track_id: uuid.UUID
    selected: bool
    count: int
