from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class TrackInfo(BaseModel):
    """Track metadata as shown in library lists and search results."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    bpm: float | None = None
    key: str | None = None
    duration: str | None = None
    rating: int | None = None
    location: str | None = None
    created_at: datetime


class TrackDetail(TrackInfo):
    """Full track detail including its origin in the DJ software library."""

    date_added: str | None = None
    external_id: str | None = None


class TrackSearchResult(TrackInfo):
    selection_count: int = 0


class TrackSearchResponse(BaseModel):
    query: str
    count: int
    data: list[TrackSearchResult]


class FacetsResponse(BaseModel):
    genres: list[str]
    artists: list[str]


class DeleteResponse(BaseModel):
    deleted: int
