"""Building blocks of the meeting-session song picker.

- Local filters (genre, BPM bucket) applied on top of remote search results
- ``Debouncer`` with an injectable timer
- ``SearchNavigator``: the typing/navigating keyboard state machine
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, Protocol, TypeVar

from app.library.normalize import normalize_for_search
from app.models.track import Track

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Local filters
# ---------------------------------------------------------------------------


class BpmRange(StrEnum):
    SLOW = "slow"  # < 100
    MEDIUM = "medium"  # 100-119
    FAST = "fast"  # 120-139
    VERY_FAST = "very_fast"  # >= 140


def bpm_range_of(bpm: float | None) -> BpmRange | None:
    if bpm is None:
        return None
    if bpm < 100:
        return BpmRange.SLOW
    if bpm < 120:
        return BpmRange.MEDIUM
    if bpm < 140:
        return BpmRange.FAST
    return BpmRange.VERY_FAST


@dataclass(frozen=True)
class LocalFilters:
    genre: str | None = None
    bpm_range: BpmRange | None = None

    def matches(self, track: Track) -> bool:
        if self.genre is not None and track.genre != self.genre:
            return False
        if self.bpm_range is not None and bpm_range_of(track.bpm) is not self.bpm_range:
            return False
        return True


def apply_local_filters(tracks: Iterable[Track], filters: LocalFilters) -> list[Track]:
    return [t for t in tracks if filters.matches(t)]


def genres_of(tracks: Iterable[Track]) -> list[str]:
    return sorted({t.genre for t in tracks if t.genre})


def filter_snapshot(tracks: Iterable[Track], query: str) -> list[Track]:
    """In-memory match of ``query`` against title, artist or album.

    Comparison ignores case and Hebrew niqqud. Used on already-loaded lists
    (such as the current selection), never as the primary library search.
    """
    needle = normalize_for_search(query)
    if not needle:
        return list(tracks)
    return [
        t
        for t in tracks
        if any(needle in normalize_for_search(value) for value in (t.title, t.artist, t.album))
    ]


def sort_by_popularity(tracks: Sequence[Track], counts: Mapping[uuid.UUID, int]) -> list[Track]:
    """Most-picked tracks first, then by title."""
    return sorted(tracks, key=lambda t: (-counts.get(t.id, 0), normalize_for_search(t.title)))


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timer(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopTimer:
    """``Timer`` backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class Debouncer(Generic[T]):
    """Run ``callback`` once input has been quiet for ``delay`` seconds.

    Every ``submit`` cancels the pending timer and starts a new one, so only
    the last value of a burst reaches the callback.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[T], None],
        timer: Timer | None = None,
    ) -> None:
        self.delay = delay
        self._callback = callback
        self._timer = timer or LoopTimer()
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def submit(self, value: T) -> None:
        self.cancel()
        self._handle = self._timer.call_later(self.delay, lambda: self._fire(value))

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, value: T) -> None:
        self._handle = None
        self._callback(value)


# ---------------------------------------------------------------------------
# Keyboard navigation
# ---------------------------------------------------------------------------


class InputMode(StrEnum):
    TYPING = "typing"
    NAVIGATING = "navigating"


class Key(StrEnum):
    ARROW_UP = "ArrowUp"
    ARROW_DOWN = "ArrowDown"
    SPACE = " "
    ENTER = "Enter"
    ESCAPE = "Escape"


@dataclass(frozen=True)
class KeyResult:
    """What the UI should do after a key press."""

    toggle_index: int | None = None
    prevent_default: bool = False
    clear_query: bool = False


@dataclass
class SearchNavigator:
    """Typing/navigating state machine for the result list.

    Arrow keys enter navigation and move a highlight clamped to the result
    list. Typing or Escape returns to typing with the highlight at 0. Space
    toggles the highlighted result only while navigating; otherwise it is
    typed into the query. Enter toggles whenever the search field is focused
    and the query is non-empty.
    """

    mode: InputMode = InputMode.TYPING
    highlighted: int = 0

    def reset(self) -> None:
        self.mode = InputMode.TYPING
        self.highlighted = 0

    def on_text_input(self) -> None:
        self.reset()

    def clamp(self, result_count: int) -> None:
        self.highlighted = max(0, min(self.highlighted, result_count - 1))

    def on_key(
        self,
        key: str,
        *,
        result_count: int,
        search_focused: bool = True,
        query: str = "",
    ) -> KeyResult:
        if key == Key.ARROW_DOWN:
            self.mode = InputMode.NAVIGATING
            self.highlighted = max(0, min(self.highlighted + 1, result_count - 1))
            return KeyResult(prevent_default=True)

        if key == Key.ARROW_UP:
            self.mode = InputMode.NAVIGATING
            self.highlighted = max(0, min(self.highlighted - 1, result_count - 1))
            return KeyResult(prevent_default=True)

        if key == Key.SPACE:
            if self.mode is InputMode.NAVIGATING and result_count > 0:
                return KeyResult(toggle_index=self.highlighted, prevent_default=True)
            return KeyResult()

        if key == Key.ENTER:
            if search_focused and result_count > 0 and query:
                return KeyResult(toggle_index=self.highlighted, prevent_default=True)
            return KeyResult()

        if key == Key.ESCAPE:
            self.reset()
            return KeyResult(clear_query=True)

        if len(key) == 1:
            self.on_text_input()
        return KeyResult()
