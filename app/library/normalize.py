"""Text normalization for imported track fields.

Two families of helpers live here:

- Storage normalization (``normalize_text``, ``decode_location``,
  ``format_duration``): applied by every parser before a field is stored.
- Comparison normalization (``normalize_for_search``, ``duplicate_key``):
  used to compare titles and artists, never written to the store.
"""

from __future__ import annotations

import re
import unicodedata
from urllib.parse import unquote

# C0 controls except tab (\x09), LF (\x0A) and CR (\x0D)
_CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")

# Hebrew cantillation marks and niqqud
_HEBREW_MARKS_PATTERN = re.compile(r"[\u0591-\u05C7]")

_FILE_URL_PREFIX_PATTERN = re.compile(r"^file://localhost/")

DEFAULT_KEY_SEPARATOR = "|||"


def normalize_text(raw: str | None) -> str | None:
    """Clean a raw field value for storage.

    Removes NUL and other C0 control characters (tab, LF and CR are kept),
    applies Unicode NFC composition and trims surrounding whitespace.

    Idempotent: ``normalize_text(normalize_text(x)) == normalize_text(x)``.

    Args:
        raw: Raw value from an export file, or ``None``.

    Returns:
        The cleaned string, or ``None`` if nothing is left.
    """
    if raw is None:
        return None
    clean = _CONTROL_CHARS_PATTERN.sub("", raw)
    clean = unicodedata.normalize("NFC", clean).strip()
    return clean or None


def normalize_for_search(raw: str | None) -> str:
    """Fold a string for case- and niqqud-insensitive comparison."""
    if not raw:
        return ""
    folded = unicodedata.normalize("NFC", raw).casefold().strip()
    return _HEBREW_MARKS_PATTERN.sub("", folded)


def format_duration(total_seconds: int) -> str:
    """Format a duration in whole seconds as ``M:SS``.

    >>> format_duration(61)
    '1:01'
    >>> format_duration(600)
    '10:00'
    """
    minutes, seconds = divmod(int(total_seconds), 60)
    return f"{minutes}:{seconds:02d}"


def decode_location(raw: str | None) -> str | None:
    """Decode a track location URL into a filesystem path.

    Percent-encoding is decoded and a ``file://localhost/`` prefix is
    stripped. If the value cannot be decoded it is kept as-is.
    """
    if not raw:
        return None
    try:
        decoded = unquote(raw, errors="strict")
    except UnicodeDecodeError:
        return raw
    return _FILE_URL_PREFIX_PATTERN.sub("", decoded)


def duplicate_key(
    title: str | None,
    artist: str | None,
    separator: str = DEFAULT_KEY_SEPARATOR,
) -> str:
    """Composite ``title + separator + artist`` key for exact-duplicate checks."""
    return f"{(title or '').strip().lower()}{separator}{(artist or '').strip().lower()}"


def title_key(title: str | None) -> str:
    """Lower-cased title used for in-batch dedupe."""
    return (title or "").strip().lower()
