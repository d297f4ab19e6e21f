"""DJ-software library export parsers.

Two formats are supported:

- Attribute-block (Rekordbox-style XML): repeated ``<TRACK .../>`` elements
  whose attributes carry the track fields.
- Tab-delimited text: a header row followed by one track per line.

Both parsers are single-pass generators that yield ``TrackCandidate`` objects
in source order. A malformed block or row is dropped, never fatal.
"""

from __future__ import annotations

import html
import logging
import re
import unicodedata
from collections.abc import Iterable, Iterator
from dataclasses import asdict, dataclass
from enum import StrEnum

from app.library.normalize import decode_location, format_duration, normalize_text, title_key

logger = logging.getLogger(__name__)

# Rekordbox marks short one-shot samples as "WAV File"
SAMPLE_KIND = "WAV File"
MIN_SAMPLE_SECONDS = 30

_TRACK_BLOCK_PATTERN = re.compile(r"<TRACK\s+([\s\S]*?)(?:/>|>[\s\S]*?</TRACK>)")
_ATTRIBUTE_PATTERN = re.compile(r'([A-Za-z_][\w.-]*)\s*=\s*"([^"]*)"')
_WHITESPACE_PATTERN = re.compile(r"\s+")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_UTF8_BOM = b"\xef\xbb\xbf"

# Tab-delimited column positions
_COL_TITLE = 2
_COL_ARTIST = 3
_COL_ALBUM = 4
_COL_BPM = 5
_COL_KEY = 6
_COL_DURATION = 7
_COL_GENRE = 8
_COL_RATING = 9
_COL_DATE_ADDED = 10


class ExportFormat(StrEnum):
    ATTRIBUTE_BLOCK = "xml"
    TAB_DELIMITED = "txt"


@dataclass(frozen=True)
class TrackCandidate:
    """A parsed, normalized track that has not been persisted yet."""

    title: str
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

    def to_row(self) -> dict[str, object]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def _positive_float(raw: str | None) -> float | None:
    if not raw:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    if value != value or value <= 0:  # NaN or non-positive
        return None
    return value


def _positive_int(raw: str | None) -> int | None:
    if not raw:
        return None
    match = re.match(r"\s*[+-]?\d+", raw)
    if match is None:
        return None
    value = int(match.group())
    return value if value > 0 else None


def _iso_date(raw: str | None) -> str | None:
    value = normalize_text(raw)
    if value is None or not _DATE_PATTERN.match(value):
        return None
    return value


# ---------------------------------------------------------------------------
# Attribute-block (XML) parser
# ---------------------------------------------------------------------------


def _block_attributes(block: str) -> dict[str, str]:
    attrs = _WHITESPACE_PATTERN.sub(" ", block)
    return {name.lower(): html.unescape(value) for name, value in _ATTRIBUTE_PATTERN.findall(attrs)}


def _candidate_from_attributes(
    attrs: dict[str, str],
    min_sample_seconds: int,
) -> TrackCandidate | None:
    title = normalize_text(attrs.get("name"))
    if title is None:
        return None

    total_time = _positive_int(attrs.get("totaltime")) or 0
    if attrs.get("kind", "") == SAMPLE_KIND and total_time < min_sample_seconds:
        return None

    return TrackCandidate(
        title=title,
        artist=normalize_text(attrs.get("artist")),
        album=normalize_text(attrs.get("album")),
        bpm=_positive_float(attrs.get("averagebpm")),
        key=normalize_text(attrs.get("tonality")),
        duration=format_duration(total_time) if total_time > 0 else None,
        genre=normalize_text(attrs.get("genre")),
        rating=_positive_int(attrs.get("rating")),
        date_added=_iso_date(attrs.get("dateadded")),
        external_id=normalize_text(attrs.get("trackid")),
        location=normalize_text(decode_location(attrs.get("location"))),
    )


def parse_attribute_blocks(
    text: str,
    min_sample_seconds: int = MIN_SAMPLE_SECONDS,
) -> Iterator[TrackCandidate]:
    """Parse ``<TRACK>`` attribute blocks from an XML library export.

    Blocks are matched textually so a malformed document still yields every
    well-formed block before and after the damage. Playlist references
    (``<TRACK Key="..."/>``) carry no ``Name`` and are skipped with the
    other nameless blocks.

    Args:
        text: Decoded export file content.
        min_sample_seconds: ``WAV File`` entries shorter than this are
            treated as samples and skipped.

    Yields:
        One ``TrackCandidate`` per usable block, in document order.
    """
    seen = 0
    yielded = 0
    for match in _TRACK_BLOCK_PATTERN.finditer(text):
        seen += 1
        try:
            candidate = _candidate_from_attributes(
                _block_attributes(match.group(1)), min_sample_seconds
            )
        except Exception:
            logger.debug("Dropping malformed TRACK block at offset %d", match.start())
            continue
        if candidate is None:
            continue
        yielded += 1
        yield candidate
    logger.debug("Attribute-block parse: %d blocks, %d tracks", seen, yielded)


# ---------------------------------------------------------------------------
# Tab-delimited parser
# ---------------------------------------------------------------------------


def _candidate_from_row(fields: list[str]) -> TrackCandidate | None:
    def field(index: int) -> str | None:
        return fields[index] if index < len(fields) else None

    title = normalize_text(field(_COL_TITLE))
    if title is None:
        return None

    return TrackCandidate(
        title=title,
        artist=normalize_text(field(_COL_ARTIST)),
        album=normalize_text(field(_COL_ALBUM)),
        bpm=_positive_float(field(_COL_BPM)),
        key=normalize_text(field(_COL_KEY)),
        duration=normalize_text(field(_COL_DURATION)),
        genre=normalize_text(field(_COL_GENRE)),
        rating=_positive_int(field(_COL_RATING)),
        date_added=_iso_date(field(_COL_DATE_ADDED)),
    )


def parse_tab_delimited(text: str) -> Iterator[TrackCandidate]:
    """Parse a tab-delimited library export.

    Rows are separated by LF or CRLF only. Row 0 is a header and is
    discarded. Rows with an empty title are skipped.
    """
    lines = [line.removesuffix("\r") for line in text.split("\n")]
    for line_number, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        try:
            candidate = _candidate_from_row(line.split("\t"))
        except Exception:
            logger.debug("Dropping malformed row %d", line_number)
            continue
        if candidate is not None:
            yield candidate


# ---------------------------------------------------------------------------
# Dedupe and dispatch
# ---------------------------------------------------------------------------


def dedupe_by_title(candidates: Iterable[TrackCandidate]) -> Iterator[TrackCandidate]:
    """Drop candidates whose lower-cased title was already seen (first wins)."""
    seen: set[str] = set()
    for candidate in candidates:
        key = title_key(candidate.title)
        if key in seen:
            continue
        seen.add(key)
        yield candidate


def decode_upload(data: bytes) -> str:
    """Decode uploaded export bytes as UTF-8, dropping a leading BOM."""
    if data.startswith(_UTF8_BOM):
        data = data[len(_UTF8_BOM) :]
    return unicodedata.normalize("NFC", data.decode("utf-8", errors="replace"))


def detect_format(filename: str | None, text: str) -> ExportFormat:
    """Route ``.xml`` files or content with an XML declaration to the XML parser."""
    if (filename or "").lower().endswith(".xml") or text.lstrip().startswith("<?xml"):
        return ExportFormat.ATTRIBUTE_BLOCK
    return ExportFormat.TAB_DELIMITED


def parse_library_file(
    filename: str | None,
    text: str,
    min_sample_seconds: int = MIN_SAMPLE_SECONDS,
) -> Iterator[TrackCandidate]:
    """Parse an export file with the parser matching its format."""
    if detect_format(filename, text) is ExportFormat.ATTRIBUTE_BLOCK:
        return parse_attribute_blocks(text, min_sample_seconds=min_sample_seconds)
    return parse_tab_delimited(text)
