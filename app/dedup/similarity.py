"""Title similarity used for fuzzy duplicate review.

The score is deliberately cheap and is not an edit distance:

1. Case-fold and trim both strings.
2. Equal after folding -> 1.0.
3. Either string empty -> 0.0.
4. One contains the other -> len(shorter) / len(longer).
5. Otherwise -> Jaccard index of the two character sets.

It is commutative but does not satisfy the triangle inequality. Grouping
thresholds were tuned against exactly this function.
"""

from __future__ import annotations

from dataclasses import dataclass


def fold_title(value: str | None) -> str:
    return (value or "").casefold().strip()


def similarity(a: str | None, b: str | None) -> float:
    """Return a similarity score in ``[0.0, 1.0]`` for two titles."""
    s1 = fold_title(a)
    s2 = fold_title(b)

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    if s1 in s2 or s2 in s1:
        shorter, longer = sorted((len(s1), len(s2)))
        return shorter / longer

    chars1 = set(s1)
    chars2 = set(s2)
    return len(chars1 & chars2) / len(chars1 | chars2)


@dataclass(frozen=True)
class TitleProfile:
    """Precomputed sizes used to bound ``similarity`` without computing it."""

    length: int
    charset_size: int

    @classmethod
    def of(cls, title: str | None) -> TitleProfile:
        folded = fold_title(title)
        return cls(length=len(folded), charset_size=len(set(folded)))

    def upper_bound(self, other: TitleProfile) -> float:
        """Largest score ``similarity`` could return for the two titles.

        The substring score is the length ratio and the Jaccard index is at
        most the ratio of the character-set sizes.
        """
        if self.length == 0 or other.length == 0:
            return 1.0 if self.length == other.length else 0.0
        length_ratio = min(self.length, other.length) / max(self.length, other.length)
        charset_ratio = min(self.charset_size, other.charset_size) / max(
            self.charset_size, other.charset_size
        )
        return max(length_ratio, charset_ratio)
