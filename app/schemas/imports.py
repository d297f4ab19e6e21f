from __future__ import annotations

import re
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from app.library.normalize import normalize_text
from app.library.parsers import TrackCandidate

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ImportStrategy(StrEnum):
    """How a batch of candidates is written to the library."""

    BULK = "bulk"
    CHUNKED = "chunked"


class TrackCandidateIn(BaseModel):
    """A pre-parsed track sent by a client (the CLI or the web uploader).

    Field values are cleaned the way the file parsers clean them: zero,
    negative or unparseable BPM and rating, and malformed dates, become
    ``None``. A blank title also becomes ``None``; such rows are skipped.
    """

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    bpm: float | None = None
    key: str | None = None
    duration: str | None = None
    genre: str | None = None
    rating: int | None = None
    date_added: str | None = None
    external_id: str | None = None
    location: str | None = None

    @field_validator(
        "title", "artist", "album", "key", "duration", "genre", "external_id", "location"
    )
    @classmethod
    def _clean(cls, value: str | None) -> str | None:
        return normalize_text(value)

    @field_validator("bpm", mode="before")
    @classmethod
    def _positive_bpm(cls, value: object) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            bpm = float(value)
        except (TypeError, ValueError):
            return None
        return bpm if bpm > 0 else None

    @field_validator("rating", mode="before")
    @classmethod
    def _positive_rating(cls, value: object) -> int | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            rating = int(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return rating if rating > 0 else None

    @field_validator("date_added", mode="before")
    @classmethod
    def _iso_date(cls, value: object) -> str | None:
        cleaned = normalize_text(value) if isinstance(value, str) else None
        if cleaned is None or not _DATE_PATTERN.match(cleaned):
            return None
        return cleaned

    def to_candidate(self) -> TrackCandidate:
        if self.title is None:
            raise ValueError("track has no title")
        return TrackCandidate(**self.model_dump())

    @classmethod
    def from_candidate(cls, candidate: TrackCandidate) -> TrackCandidateIn:
        return cls(**candidate.to_row())


class ImportJsonRequest(BaseModel):
    tracks: list[TrackCandidateIn]
    strategy: ImportStrategy = ImportStrategy.CHUNKED


class ImportSummaryResponse(BaseModel):
    """Counts of one import run plus a localized one-line summary."""

    total: int
    imported: int
    skipped: int
    errors: int
    error_details: list[str] = Field(default_factory=list)
    cancelled: bool = False
    message: str


class CompareResponse(BaseModel):
    file_count: int
    library_count: int
    missing_count: int
    missing: list[TrackCandidateIn]
