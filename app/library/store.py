"""Owner-scoped record store over SQLAlchemy.

Every query issued through ``TrackStore`` and ``SelectionStore`` is filtered
by the owner the store was bound to, and every inserted row is stamped with
that owner. Database exceptions are translated into three classes:

- ``ConflictError``: unique-constraint violation (the row already exists).
- ``StoreError``: any other failed statement.
- ``StoreUnavailableError``: the database could not be reached.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from enum import StrEnum

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.library.normalize import DEFAULT_KEY_SEPARATOR, duplicate_key
from app.library.parsers import TrackCandidate
from app.models.client import Client
from app.models.selection import ClientSelection
from app.models.track import Track

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class StoreError(Exception):
    """A statement against the record store failed."""


class ConflictError(StoreError):
    """Insert rejected by a uniqueness constraint."""


class StoreUnavailableError(Exception):
    """The record store could not be reached at all."""


class TrackOrder(StrEnum):
    CREATED = "created"
    TITLE = "title"


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == UNIQUE_VIOLATION:
        return True
    message = str(orig).lower()
    return "unique constraint" in message or "duplicate key" in message


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Translate SQLAlchemy/driver exceptions raised while performing ``action``."""
    try:
        yield
    except IntegrityError as exc:
        if _is_unique_violation(exc):
            raise ConflictError(f"{action}: duplicate row") from exc
        raise StoreError(f"{action}: {exc.orig}") from exc
    except (OperationalError, InterfaceError, OSError) as exc:
        logger.error("Record store unreachable during %s: %s", action, exc)
        raise StoreUnavailableError(f"Record store unavailable ({action})") from exc
    except SQLAlchemyError as exc:
        raise StoreError(f"{action}: {exc}") from exc


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class TrackStore:
    """Track table access for a single owner."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        owner_id: uuid.UUID,
        key_separator: str = DEFAULT_KEY_SEPARATOR,
    ) -> None:
        self.session_factory = session_factory
        self.owner_id = owner_id
        self.key_separator = key_separator

    def natural_key(self, candidate: TrackCandidate) -> str:
        base = duplicate_key(candidate.title, candidate.artist, self.key_separator)
        return f"{base}{self.key_separator}{candidate.location or ''}"

    def _to_model(self, candidate: TrackCandidate) -> Track:
        return Track(
            owner_id=self.owner_id,
            natural_key=self.natural_key(candidate),
            **candidate.to_row(),
        )

    # -- inserts -----------------------------------------------------------

    async def insert_many(self, candidates: Sequence[TrackCandidate]) -> int:
        """Insert all candidates in one transaction; all or nothing."""
        if not candidates:
            return 0
        with _store_errors("insert_many"):
            async with self.session_factory() as session:
                session.add_all([self._to_model(c) for c in candidates])
                await session.commit()
        return len(candidates)

    async def insert_one(self, candidate: TrackCandidate) -> uuid.UUID:
        with _store_errors("insert_one"):
            async with self.session_factory() as session:
                track = self._to_model(candidate)
                session.add(track)
                await session.commit()
                return track.id

    # -- reads -------------------------------------------------------------

    async def get(self, track_id: uuid.UUID) -> Track | None:
        with _store_errors("get"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Track).where(Track.owner_id == self.owner_id, Track.id == track_id)
                )
                return result.scalar_one_or_none()

    async def count(self) -> int:
        with _store_errors("count"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(Track).where(Track.owner_id == self.owner_id)
                )
                return result.scalar_one()

    async def fetch_page(
        self,
        *,
        order_by: TrackOrder = TrackOrder.CREATED,
        limit: int,
        offset: int = 0,
    ) -> list[Track]:
        """Return one page of the owner's library in a stable order."""
        if order_by is TrackOrder.TITLE:
            ordering = (Track.title.asc(), Track.created_at.asc(), Track.id.asc())
        else:
            ordering = (Track.created_at.asc(), Track.id.asc())
        stmt = (
            select(Track)
            .where(Track.owner_id == self.owner_id)
            .order_by(*ordering)
            .offset(offset)
            .limit(limit)
        )
        with _store_errors("fetch_page"):
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

    async def search(
        self,
        query: str,
        *,
        artist: str | None = None,
        limit: int = 500,
    ) -> list[Track]:
        """Case-insensitive substring match on title, artist or album."""
        stmt = select(Track).where(Track.owner_id == self.owner_id)
        if artist:
            stmt = stmt.where(Track.artist == artist)
        if query.strip():
            pattern = _like_pattern(query.strip())
            stmt = stmt.where(
                or_(
                    Track.title.ilike(pattern, escape="\\"),
                    Track.artist.ilike(pattern, escape="\\"),
                    Track.album.ilike(pattern, escape="\\"),
                )
            )
        stmt = stmt.order_by(Track.title.asc()).limit(limit)
        with _store_errors("search"):
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

    async def list_page(
        self,
        *,
        search: str | None = None,
        limit: int,
        offset: int = 0,
    ) -> tuple[int, list[Track]]:
        """Newest-first page of the library plus the total matching count."""
        base = select(Track).where(Track.owner_id == self.owner_id)
        if search and search.strip():
            pattern = _like_pattern(search.strip())
            base = base.where(
                or_(
                    Track.title.ilike(pattern, escape="\\"),
                    Track.artist.ilike(pattern, escape="\\"),
                )
            )
        with _store_errors("list_page"):
            async with self.session_factory() as session:
                total = await session.execute(select(func.count()).select_from(base.subquery()))
                page = await session.execute(
                    base.order_by(Track.created_at.desc(), Track.id.desc())
                    .offset(offset)
                    .limit(limit)
                )
                return total.scalar_one(), list(page.scalars().all())

    async def selection_counts(self) -> dict[uuid.UUID, int]:
        """How many of the owner's clients picked each track."""
        stmt = (
            select(ClientSelection.track_id, func.count())
            .where(ClientSelection.owner_id == self.owner_id)
            .group_by(ClientSelection.track_id)
        )
        with _store_errors("selection_counts"):
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return {track_id: count for track_id, count in result.all()}

    async def facets(self) -> tuple[list[str], list[str]]:
        """Distinct non-empty genres and artists, sorted."""
        with _store_errors("facets"):
            async with self.session_factory() as session:
                genres = await session.execute(
                    select(Track.genre)
                    .where(Track.owner_id == self.owner_id, Track.genre.isnot(None))
                    .distinct()
                )
                artists = await session.execute(
                    select(Track.artist)
                    .where(Track.owner_id == self.owner_id, Track.artist.isnot(None))
                    .distinct()
                )
        return (
            sorted(g for g in genres.scalars().all() if g),
            sorted(a for a in artists.scalars().all() if a),
        )

    # -- deletes -----------------------------------------------------------

    async def delete_ids(self, track_ids: Iterable[uuid.UUID]) -> int:
        ids = list(track_ids)
        if not ids:
            return 0
        with _store_errors("delete_ids"):
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(Track).where(Track.owner_id == self.owner_id, Track.id.in_(ids))
                )
                await session.commit()
                return result.rowcount or 0

    async def delete_all(self) -> int:
        with _store_errors("delete_all"):
            async with self.session_factory() as session:
                result = await session.execute(delete(Track).where(Track.owner_id == self.owner_id))
                await session.commit()
                return result.rowcount or 0


class SelectionStore:
    """A client's playlist selection (join rows between a client and tracks)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        owner_id: uuid.UUID,
        client_id: uuid.UUID,
    ) -> None:
        self.session_factory = session_factory
        self.owner_id = owner_id
        self.client_id = client_id

    def _scope(self):
        return (
            ClientSelection.owner_id == self.owner_id,
            ClientSelection.client_id == self.client_id,
        )

    async def get_client(self) -> Client | None:
        with _store_errors("get_client"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Client).where(
                        Client.owner_id == self.owner_id, Client.id == self.client_id
                    )
                )
                return result.scalar_one_or_none()

    async def list_tracks(self) -> list[Track]:
        """Selected tracks in insertion order."""
        stmt = (
            select(Track)
            .join(ClientSelection, ClientSelection.track_id == Track.id)
            .where(*self._scope())
            .order_by(ClientSelection.sort_order.asc(), ClientSelection.created_at.asc())
        )
        with _store_errors("list_selection"):
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

    async def selected_ids(self) -> set[uuid.UUID]:
        with _store_errors("selected_ids"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ClientSelection.track_id).where(*self._scope())
                )
                return set(result.scalars().all())

    async def add(self, track_id: uuid.UUID) -> int:
        """Append a track to the selection and return its sort order."""
        with _store_errors("add_selection"):
            async with self.session_factory() as session:
                current = await session.execute(
                    select(func.count()).select_from(ClientSelection).where(*self._scope())
                )
                sort_order = current.scalar_one() + 1
                session.add(
                    ClientSelection(
                        client_id=self.client_id,
                        track_id=track_id,
                        owner_id=self.owner_id,
                        sort_order=sort_order,
                    )
                )
                await session.commit()
        return sort_order

    async def remove(self, track_id: uuid.UUID) -> bool:
        with _store_errors("remove_selection"):
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(ClientSelection).where(
                        *self._scope(), ClientSelection.track_id == track_id
                    )
                )
                await session.commit()
                return bool(result.rowcount)

    async def clear(self) -> int:
        with _store_errors("clear_selection"):
            async with self.session_factory() as session:
                result = await session.execute(delete(ClientSelection).where(*self._scope()))
                await session.commit()
                return result.rowcount or 0

