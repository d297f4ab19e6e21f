"""Shared route dependencies building owner-scoped record stores."""

import uuid

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.oauth2 import get_current_owner
from app.db.session import get_session_factory
from app.library.store import SelectionStore, TrackStore
from app.settings import settings


async def get_track_store(
    owner_id: uuid.UUID = Depends(get_current_owner),  # noqa: B008
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
) -> TrackStore:
    return TrackStore(session_factory, owner_id, settings.duplicate_key_separator)


async def get_selection_store(
    client_id: uuid.UUID,
    owner_id: uuid.UUID = Depends(get_current_owner),  # noqa: B008
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
) -> SelectionStore:
    return SelectionStore(session_factory, owner_id, client_id)
