"""Compare a library export file against the stored library.

Reports which tracks of the file have no title+artist match in the store,
so a user can spot what a previous import missed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from app.dedup.engine import DEFAULT_PAGE_SIZE, load_library
from app.library.normalize import DEFAULT_KEY_SEPARATOR, duplicate_key
from app.library.parsers import TrackCandidate
from app.library.store import TrackOrder, TrackStore

logger = logging.getLogger(__name__)

MAX_MISSING_LISTED = 100


@dataclass
class LibraryComparison:
    file_count: int = 0
    library_count: int = 0
    missing_count: int = 0
    missing: list[TrackCandidate] = field(default_factory=list)


async def compare_with_library(
    store: TrackStore,
    candidates: Iterable[TrackCandidate],
    *,
    separator: str = DEFAULT_KEY_SEPARATOR,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_listed: int = MAX_MISSING_LISTED,
) -> LibraryComparison:
    """List file tracks whose title+artist key is absent from the library.

    File tracks are deduplicated by the same key first (first occurrence
    wins). At most ``max_listed`` missing tracks are returned; the full count
    is in ``missing_count``.
    """
    unique: dict[str, TrackCandidate] = {}
    for candidate in candidates:
        unique.setdefault(duplicate_key(candidate.title, candidate.artist, separator), candidate)

    library = await load_library(store, TrackOrder.CREATED, page_size)
    library_keys = {duplicate_key(t.title, t.artist, separator) for t in library}

    comparison = LibraryComparison(file_count=len(unique), library_count=len(library))
    for key, candidate in unique.items():
        if key in library_keys:
            continue
        comparison.missing_count += 1
        if len(comparison.missing) < max_listed:
            comparison.missing.append(candidate)

    logger.info(
        "Compared %d file tracks with %d library tracks: %d missing",
        comparison.file_count,
        comparison.library_count,
        comparison.missing_count,
    )
    return comparison
