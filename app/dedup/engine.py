"""Duplicate detection over an owner's full song library.

Two modes:

- Exact: tracks sharing ``lower(trim(title)) + sep + lower(trim(artist))``
  are duplicates; the earliest created one is kept and the rest deleted.
- Fuzzy review: tracks are grouped by title ``similarity`` at or above a
  threshold; the user picks which members of each group to keep before the
  rest are deleted.

The library is always loaded through a paginated loop because the backing
store caps rows per request. Deletes run in fixed-size batches; the first
failed batch stops the run and already-deleted batches stay deleted.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from app.dedup.similarity import TitleProfile, similarity
from app.library.normalize import DEFAULT_KEY_SEPARATOR, duplicate_key
from app.library.store import StoreError, StoreUnavailableError, TrackOrder, TrackStore
from app.models.track import Track

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_DELETE_BATCH_SIZE = 100
DEFAULT_SIMILARITY_THRESHOLD = 0.70


class DeleteBatchError(Exception):
    """A delete batch failed; earlier batches were already applied."""

    def __init__(self, deleted: int, remaining: int, message: str) -> None:
        super().__init__(message)
        self.deleted = deleted
        self.remaining = remaining


class InvalidResolutionError(ValueError):
    """A submitted keep/discard resolution is inconsistent."""


# ---------------------------------------------------------------------------
# Groups and review state
# ---------------------------------------------------------------------------


@dataclass
class DuplicateGroup:
    """Tracks judged similar, plus the subset the user wants to keep."""

    track_ids: list[uuid.UUID]
    keep_ids: set[uuid.UUID]
    tracks: list[Track] = field(default_factory=list)

    @classmethod
    def from_tracks(cls, tracks: Sequence[Track]) -> DuplicateGroup:
        """Build a group whose default keep-set is its first (anchor) track."""
        return cls(
            track_ids=[t.id for t in tracks],
            keep_ids={tracks[0].id},
            tracks=list(tracks),
        )

    def toggle_keep(self, track_id: uuid.UUID) -> bool:
        """Flip a member between keep and delete.

        Removing the last kept member is a no-op so the keep-set never
        becomes empty.

        Returns:
            ``True`` if the keep-set changed.
        """
        if track_id not in self.track_ids:
            raise KeyError(track_id)
        if track_id in self.keep_ids:
            if len(self.keep_ids) == 1:
                return False
            self.keep_ids.discard(track_id)
            return True
        self.keep_ids.add(track_id)
        return True

    def deletion_ids(self) -> list[uuid.UUID]:
        return [tid for tid in self.track_ids if tid not in self.keep_ids]


@dataclass
class DuplicateReview:
    """An interactive review session over fuzzy duplicate groups."""

    groups: list[DuplicateGroup] = field(default_factory=list)
    scanned: int = 0

    def toggle_keep(self, group_index: int, track_id: uuid.UUID) -> bool:
        return self.groups[group_index].toggle_keep(track_id)

    def deletion_ids(self) -> list[uuid.UUID]:
        ids: list[uuid.UUID] = []
        for group in self.groups:
            ids.extend(group.deletion_ids())
        return ids

    @classmethod
    def from_resolution(
        cls, resolution: Iterable[tuple[Sequence[uuid.UUID], Iterable[uuid.UUID]]]
    ) -> DuplicateReview:
        """Rebuild a review from ``(track_ids, keep_ids)`` pairs.

        Raises:
            InvalidResolutionError: A group keeps nothing or keeps a track
                that is not one of its members.
        """
        groups: list[DuplicateGroup] = []
        for index, (track_ids, keep_ids) in enumerate(resolution):
            members = list(dict.fromkeys(track_ids))
            keep = set(keep_ids)
            if not keep:
                raise InvalidResolutionError(f"Group {index} must keep at least one track")
            if not keep.issubset(members):
                raise InvalidResolutionError(f"Group {index} keeps tracks outside the group")
            groups.append(DuplicateGroup(track_ids=members, keep_ids=keep))
        return cls(groups=groups)


@dataclass
class DedupResult:
    """Outcome of a delete run."""

    scanned: int = 0
    deleted: int = 0
    library_count: int = 0


# ---------------------------------------------------------------------------
# Pure detection
# ---------------------------------------------------------------------------


def find_exact_duplicates(
    tracks: Iterable[Track],
    separator: str = DEFAULT_KEY_SEPARATOR,
) -> list[uuid.UUID]:
    """Return ids of every track whose title+artist key was seen earlier.

    ``tracks`` must be ordered by creation time, oldest first.
    """
    seen: dict[str, uuid.UUID] = {}
    duplicates: list[uuid.UUID] = []
    for track in tracks:
        key = duplicate_key(track.title, track.artist, separator)
        if key in seen:
            duplicates.append(track.id)
        else:
            seen[key] = track.id
    return duplicates


def group_similar(
    tracks: Sequence[Track],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[DuplicateGroup]:
    """Greedily group tracks with similar titles.

    Each unprocessed track, in input (title) order, anchors a new group and
    absorbs every later unprocessed track scoring ``>= threshold`` against
    the anchor. Single-member groups are discarded. Pairs whose similarity
    upper bound is below the threshold are skipped without scoring, which
    does not change the result.
    """
    profiles = [TitleProfile.of(t.title) for t in tracks]
    processed: set[uuid.UUID] = set()
    groups: list[DuplicateGroup] = []

    for i, anchor in enumerate(tracks):
        if anchor.id in processed:
            continue
        processed.add(anchor.id)
        members = [anchor]

        for j in range(i + 1, len(tracks)):
            other = tracks[j]
            if other.id in processed:
                continue
            if profiles[i].upper_bound(profiles[j]) < threshold:
                continue
            if similarity(anchor.title, other.title) >= threshold:
                members.append(other)
                processed.add(other.id)

        if len(members) > 1:
            groups.append(DuplicateGroup.from_tracks(members))

    return groups


# ---------------------------------------------------------------------------
# Store-backed operations
# ---------------------------------------------------------------------------


async def load_library(
    store: TrackStore,
    order_by: TrackOrder = TrackOrder.CREATED,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[Track]:
    """Fetch the owner's whole library page by page until a short page."""
    tracks: list[Track] = []
    offset = 0
    while True:
        page = await store.fetch_page(order_by=order_by, limit=page_size, offset=offset)
        tracks.extend(page)
        if len(page) < page_size:
            break
        offset += page_size
    logger.debug("Loaded %d tracks ordered by %s", len(tracks), order_by)
    return tracks


async def delete_in_batches(
    store: TrackStore,
    track_ids: Sequence[uuid.UUID],
    batch_size: int = DEFAULT_DELETE_BATCH_SIZE,
) -> int:
    """Delete tracks in batches, stopping at the first failed batch.

    Raises:
        DeleteBatchError: A batch failed. Carries how many tracks were
            already deleted and how many were left untouched.
    """
    deleted = 0
    for start in range(0, len(track_ids), batch_size):
        batch = track_ids[start : start + batch_size]
        try:
            deleted += await store.delete_ids(batch)
        except (StoreError, StoreUnavailableError) as exc:
            remaining = len(track_ids) - start
            logger.error(
                "Delete batch at offset %d failed after %d deletions: %s", start, deleted, exc
            )
            raise DeleteBatchError(
                deleted=deleted,
                remaining=remaining,
                message=f"Deleted {deleted} tracks before a batch failed; {remaining} not deleted",
            ) from exc
    return deleted


async def delete_exact_duplicates(
    store: TrackStore,
    *,
    separator: str = DEFAULT_KEY_SEPARATOR,
    page_size: int = DEFAULT_PAGE_SIZE,
    batch_size: int = DEFAULT_DELETE_BATCH_SIZE,
) -> DedupResult:
    """Delete every track sharing a title+artist key with an older track."""
    tracks = await load_library(store, TrackOrder.CREATED, page_size)
    result = DedupResult(scanned=len(tracks))
    duplicate_ids = find_exact_duplicates(tracks, separator)

    if duplicate_ids:
        logger.info("Deleting %d exact duplicates of %d tracks", len(duplicate_ids), len(tracks))
        result.deleted = await delete_in_batches(store, duplicate_ids, batch_size)

    result.library_count = await store.count()
    return result


async def review_similar(
    store: TrackStore,
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> DuplicateReview:
    """Load the library in title order and build fuzzy duplicate groups."""
    tracks = await load_library(store, TrackOrder.TITLE, page_size)
    groups = group_similar(tracks, threshold)
    logger.info(
        "Similar-title review: %d groups over %d tracks (threshold %.2f)",
        len(groups),
        len(tracks),
        threshold,
    )
    return DuplicateReview(groups=groups, scanned=len(tracks))


async def resolve_review(
    store: TrackStore,
    review: DuplicateReview,
    *,
    batch_size: int = DEFAULT_DELETE_BATCH_SIZE,
) -> DedupResult:
    """Delete every group member outside its keep-set, then recount the library."""
    deletion_ids = review.deletion_ids()
    result = DedupResult(scanned=sum(len(g.track_ids) for g in review.groups))
    if deletion_ids:
        result.deleted = await delete_in_batches(store, deletion_ids, batch_size)
    result.library_count = await store.count()
    return result
