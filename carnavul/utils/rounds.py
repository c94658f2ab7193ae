"""Competition rounds and their selection priority."""
from __future__ import annotations

from enum import IntEnum
from typing import Optional, Tuple

from .text_matching import normalize_text


class Round(IntEnum):
    """Rounds ordered by priority; a higher value is a later stage of the contest."""

    NONE = 0
    PRIMERA = 1
    SEGUNDA = 2
    LIGUILLA = 3

    @property
    def label(self) -> Optional[str]:
        return _LABELS[self]


_LABELS = {
    Round.NONE: None,
    Round.PRIMERA: "Primera Rueda",
    Round.SEGUNDA: "Segunda Rueda",
    Round.LIGUILLA: "Liguilla",
}

# Checked in order, so "liguilla" wins over any rueda marker in the same label.
_CLASSIFIERS: Tuple[Tuple[Round, Tuple[str, ...]], ...] = (
    (Round.LIGUILLA, ("liguilla",)),
    (Round.SEGUNDA, ("segunda", "2da")),
    (Round.PRIMERA, ("primera", "1ra", "1era")),
)

# Normalised round phrases accepted by the explicit "Etapa - name - round" formats.
ROUND_KEYWORDS: Tuple[str, ...] = (
    "primerarueda",
    "1rarueda",
    "1erarueda",
    "segundarueda",
    "2darueda",
    "liguilla",
)


def classify_round(label: Optional[str]) -> Round:
    normalized = normalize_text(label)
    if not normalized:
        return Round.NONE
    for round_, needles in _CLASSIFIERS:
        if any(needle in normalized for needle in needles):
            return round_
    return Round.NONE


def round_priority(label: Optional[str]) -> int:
    """Return 0-3 for ``label``; absent or unknown rounds rank lowest."""

    return int(classify_round(label))


def is_round_phrase(text: Optional[str]) -> bool:
    normalized = normalize_text(text)
    return any(keyword in normalized for keyword in ROUND_KEYWORDS)


def detect_round_in_title(title: Optional[str]) -> Optional[str]:
    """Find a ``rueda``/``liguilla`` marker anywhere in a title and return its label."""

    normalized = normalize_text(title)
    if "liguilla" in normalized:
        return Round.LIGUILLA.label
    if "segundarueda" in normalized or "2darueda" in normalized:
        return Round.SEGUNDA.label
    if "primerarueda" in normalized or "1rarueda" in normalized or "1erarueda" in normalized:
        return Round.PRIMERA.label
    return None


__all__ = [
    "ROUND_KEYWORDS",
    "Round",
    "classify_round",
    "detect_round_in_title",
    "is_round_phrase",
    "round_priority",
]
