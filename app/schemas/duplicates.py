from __future__ import annotations

import uuid

from pydantic import BaseModel, Field

from app.schemas.track import TrackInfo


class DedupResponse(BaseModel):
    """Outcome of a duplicate delete run."""

    scanned: int
    deleted: int
    library_count: int


class SimilarGroup(BaseModel):
    track_ids: list[uuid.UUID]
    keep_ids: list[uuid.UUID]
    tracks: list[TrackInfo]


class SimilarReviewResponse(BaseModel):
    threshold: float
    scanned: int
    groups: list[SimilarGroup] = Field(default_factory=list)


class ResolveGroup(BaseModel):
    track_ids: list[uuid.UUID] = Field(min_length=2)
    keep_ids: list[uuid.UUID] = Field(min_length=1)


class ResolveRequest(BaseModel):
    groups: list[ResolveGroup]
