"""M3U playlist export of a client's selection."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from app.models.track import Track

logger = logging.getLogger(__name__)

PLAYLIST_MEDIA_TYPE = "audio/x-mpegurl"
UNKNOWN_ARTIST = "Unknown"


class EmptySelectionError(ValueError):
    """Nothing is selected, so there is nothing to export."""


class NoPlayableTracksError(ValueError):
    """None of the selected tracks has a file location."""


@dataclass(frozen=True)
class PlaylistExport:
    filename: str
    content: str
    included: int
    omitted: int
    media_type: str = PLAYLIST_MEDIA_TYPE


def playlist_filename(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip()) + ".m3u"


def build_playlist(name: str, tracks: Sequence[Track]) -> PlaylistExport:
    """Render selected tracks as an extended M3U playlist.

    Tracks without a location are left out and counted in ``omitted``.
    Backslashes in locations become forward slashes.

    Raises:
        EmptySelectionError: ``tracks`` is empty.
        NoPlayableTracksError: No track has a location.
    """
    if not tracks:
        raise EmptySelectionError("No songs selected.")

    playable = [t for t in tracks if t.location]
    if not playable:
        raise NoPlayableTracksError("None of the selected songs has a file location.")

    lines = ["#EXTM3U", f"#PLAYLIST:{name}"]
    for track in playable:
        lines.append(f"#EXTINF:-1,{track.artist or UNKNOWN_ARTIST} - {track.title}")
        lines.append(track.location.replace("\\", "/"))

    omitted = len(tracks) - len(playable)
    if omitted:
        logger.info("Playlist %r: %d tracks without a location omitted", name, omitted)

    return PlaylistExport(
        filename=playlist_filename(name),
        content="\n".join(lines) + "\n",
        included=len(playable),
        omitted=omitted,
    )
