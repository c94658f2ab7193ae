"""Text normalisation and fuzzy similarity for matching titles against the catalog."""

from __future__ import annotations

import re
import unicodedata
from typing import Any


_WHITESPACE_AND_APOSTROPHES = re.compile(r"['\s]")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_text(text: Any) -> str:
    """Collapse ``text`` to lowercase ASCII letters and digits only.

    Accents are stripped after NFD decomposition, so ``"Cayó La Cabra"`` and
    ``"cayo  la cabra"`` both become ``"cayolacabra"``. Non-string input
    normalises to an empty string.
    """

    if not isinstance(text, str):
        return ""
    cleaned = unicodedata.normalize("NFD", text.lower())
    cleaned = "".join(ch for ch in cleaned if not unicodedata.combining(ch))
    cleaned = _WHITESPACE_AND_APOSTROPHES.sub("", cleaned)
    return _NON_ALNUM.sub("", cleaned)


def levenshtein_distance(left: str, right: str) -> int:
    """Return the unit-cost edit distance between two strings."""

    rows = len(left) + 1
    cols = len(right) + 1
    matrix = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        matrix[i][0] = i
    for j in range(cols):
        matrix[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            if left[i - 1] == right[j - 1]:
                matrix[i][j] = matrix[i - 1][j - 1]
            else:
                matrix[i][j] = 1 + min(
                    matrix[i - 1][j - 1],
                    matrix[i][j - 1],
                    matrix[i - 1][j],
                )
    return matrix[rows - 1][cols - 1]


def similarity(left: Any, right: Any) -> float:
    """Score two strings in ``[0, 1]`` after normalisation.

    Containment of one normalised string in the other scores 1.0 so that short
    group names embedded in long titles are recognised.
    """

    a = normalize_text(left)
    b = normalize_text(right)

    if a in b or b in a:
        return 1.0

    max_len = max(len(a), len(b))
    distance = levenshtein_distance(a, b)
    return (max_len - distance) / max_len


__all__ = ["levenshtein_distance", "normalize_text", "similarity"]
