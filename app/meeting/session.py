"""Client-meeting selection session.

Holds the state of one meeting: the debounced remote search, local filters,
keyboard navigation and the client's selection. The search call and the
selection persistence are injected, so the session runs the same against
the HTTP API, the record store or test fakes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol

from app.meeting.search import (
    BpmRange,
    Debouncer,
    KeyResult,
    LocalFilters,
    SearchNavigator,
    Timer,
    apply_local_filters,
    genres_of,
)
from app.models.track import Track

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3

SearchFunction = Callable[[str], Awaitable[list[Track]]]


class SelectionBackend(Protocol):
    async def add(self, track_id: uuid.UUID) -> int: ...

    async def remove(self, track_id: uuid.UUID) -> bool: ...


class MeetingSession:
    """Search-and-select state for one client meeting.

    Each query change restarts the debounce timer. When it fires, a search
    request is issued with an increasing sequence number; a response is
    applied only if no newer response has been applied already, so a slow
    early request can never overwrite the results of a later one.
    """

    def __init__(
        self,
        search: SearchFunction,
        selection: SelectionBackend,
        *,
        selected_ids: Iterable[uuid.UUID] = (),
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer: Timer | None = None,
    ) -> None:
        self._search = search
        self._selection = selection
        self._debouncer: Debouncer[str] = Debouncer(debounce_seconds, self._start_search, timer)
        self._issued = 0
        self._applied = 0
        self._tasks: set[asyncio.Task[None]] = set()

        self.query = ""
        self.results: list[Track] = []
        self.filters = LocalFilters()
        self.selected_ids: set[uuid.UUID] = set(selected_ids)
        self.navigator = SearchNavigator()
        self.focus_requested = False
        self.searching = False

    # -- derived state -----------------------------------------------------

    @property
    def visible(self) -> list[Track]:
        """Remote results narrowed by the local filters."""
        return apply_local_filters(self.results, self.filters)

    @property
    def available_genres(self) -> list[str]:
        return genres_of(self.results)

    def is_selected(self, track_id: uuid.UUID) -> bool:
        return track_id in self.selected_ids

    # -- search ------------------------------------------------------------

    def set_query(self, query: str) -> None:
        self.query = query
        self.navigator.on_text_input()
        self._debouncer.submit(query)

    def set_filters(self, *, genre: str | None = None, bpm_range: BpmRange | None = None) -> None:
        self.filters = LocalFilters(genre=genre, bpm_range=bpm_range)
        self.navigator.reset()

    def _start_search(self, query: str) -> None:
        self._issued += 1
        task = asyncio.get_running_loop().create_task(self._run_search(query, self._issued))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_search(self, query: str, sequence: int) -> None:
        self.searching = True
        try:
            results = await self._search(query)
        except Exception:
            logger.exception("Search request #%d for %r failed", sequence, query)
            return
        finally:
            if sequence == self._issued:
                self.searching = False

        if sequence <= self._applied:
            logger.debug("Discarding stale search response #%d", sequence)
            return
        self._applied = sequence
        self.results = results
        self.navigator.clamp(len(self.visible))

    def _discard_in_flight(self) -> None:
        """Mark every search issued so far as stale."""
        self._applied = self._issued
        self.searching = False

    async def wait_idle(self) -> None:
        """Wait for every in-flight search request to settle, cancelled ones included."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- selection ---------------------------------------------------------

    async def toggle(self, track_id: uuid.UUID, *, clear_search: bool = False) -> bool:
        """Add or remove a track from the selection.

        Returns:
            ``True`` if the track is selected afterwards.
        """
        if track_id in self.selected_ids:
            await self._selection.remove(track_id)
            self.selected_ids.discard(track_id)
            selected = False
        else:
            await self._selection.add(track_id)
            self.selected_ids.add(track_id)
            selected = True

        if clear_search:
            self._debouncer.cancel()
            self._discard_in_flight()
            self.query = ""
            self.results = []
            self.navigator.reset()
            self.focus_requested = True
        return selected

    async def press_key(self, key: str, *, search_focused: bool = True) -> KeyResult:
        visible = self.visible
        result = self.navigator.on_key(
            key,
            result_count=len(visible),
            search_focused=search_focused,
            query=self.query,
        )
        if result.clear_query:
            self.set_query("")
        if result.toggle_index is not None:
            await self.toggle(visible[result.toggle_index].id)
        return result

    def close(self) -> None:
        """Stop the pending debounce and cancel in-flight searches."""
        self._debouncer.cancel()
        self._discard_in_flight()
        for task in list(self._tasks):
            task.cancel()
