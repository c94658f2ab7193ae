"""Extract year, conjunto and round from freeform carnival video titles.

Parsing is a cascade of recognizers tried in order. Each recognizer returns a
complete :class:`ParsedRecord` when it can resolve everything it needs, or
``None`` to hand the title to the next, looser recognizer. A recognizer that
matches the shape of a title but cannot resolve the conjunto falls through
instead of failing the whole parse.

Supported shapes, most specific first:

- ``4ta Etapa 2020 - Cayo La Cabra - Primera Rueda``
- ``4ta Etapa - Cayo La Cabra - Primera Rueda`` (year left to the caller)
- ``3A ETAPA LA GRAN MUÑECA LIGUILLA`` (2015 broadcast naming)
- anything containing a year between 1980 and 2099 plus a catalog name
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .catalog import (
    DEFAULT_THRESHOLD,
    NEAR_MISS_FLOOR,
    Catalog,
    CatalogEntry,
    best_catalog_score,
    find_best_match,
)
from .rounds import detect_round_in_title, is_round_phrase
from .text_matching import normalize_text


logger = logging.getLogger(__name__)

# Admission trials, parades and the Llamadas roll-call are not stage performances.
EXCLUDED_KEYWORDS: Tuple[str, ...] = ("pruebadeadmision", "desfile", "llamadas")
PLACEHOLDER_PREFIXES: Tuple[str, ...] = ("[Private video]", "[Deleted video]")

LEGACY_FORMAT_YEAR = "2015"
LEGACY_FORMAT_ROUND = "Liguilla"

_ORDINAL = r"(?:(\d+)\s*(?:era|ra|da|ta|ma|va|na|a)?\s*)?"
_DATED_PATTERN = re.compile(
    _ORDINAL + r"Etapa\s*(\d{4})\s*-\s*(.+?)\s*-\s*(.+)",
    re.IGNORECASE,
)
_UNDATED_PATTERN = re.compile(
    _ORDINAL + r"Etapa\s*-\s*(.+?)\s*-\s*(.+)",
    re.IGNORECASE,
)
_LEGACY_PATTERN = re.compile(r"^\s*(\d)\s?A?\s?ETAPA\s+(.+?)\s+(LIGUILLA)\s*$", re.IGNORECASE)
_YEAR_PATTERN = re.compile(r"\b(19[89]\d|20\d{2})\b")


@dataclass(frozen=True)
class ParsedRecord:
    year: Optional[str] = None
    group: Optional[CatalogEntry] = None
    round: Optional[str] = None
    is_alternative_format: bool = False
    # Diagnostics only: best catalog similarity seen and whether it was a near miss.
    catalog_score: float = 0.0
    near_miss: bool = False

    @classmethod
    def empty(cls, *, catalog_score: float = 0.0, near_miss: bool = False) -> "ParsedRecord":
        return cls(catalog_score=catalog_score, near_miss=near_miss)

    @property
    def is_resolved(self) -> bool:
        return bool(self.year) and self.group is not None

    def as_dict(self) -> Dict[str, object]:
        return {
            "year": self.year,
            "conjunto": self.group.as_dict() if self.group else None,
            "round": self.round,
            "isAlternativeFormat": self.is_alternative_format,
        }


Recognizer = Callable[[str, Catalog, logging.Logger, float], Optional[ParsedRecord]]


def is_placeholder_title(title: Optional[str]) -> bool:
    if not title:
        return True
    return title.startswith(PLACEHOLDER_PREFIXES)


def is_excluded_title(title: Optional[str]) -> bool:
    """True for empty, placeholder or non-competition (parade, trials) titles."""

    if is_placeholder_title(title):
        return True
    normalized = normalize_text(title)
    return any(keyword in normalized for keyword in EXCLUDED_KEYWORDS)


def _exclusion_filter(title: str, catalog: Catalog, log: logging.Logger, threshold: float) -> Optional[ParsedRecord]:
    if is_excluded_title(title):
        log.info("Skipping title by keyword or placeholder: %r", title)
        return ParsedRecord.empty()
    return None


def _explicit_format(
    title: str,
    catalog: Catalog,
    log: logging.Logger,
    threshold: float,
    *,
    dated: bool,
) -> Optional[ParsedRecord]:
    pattern = _DATED_PATTERN if dated else _UNDATED_PATTERN
    match = pattern.search(title)
    if not match:
        return None

    if dated:
        _, year, name_part, round_part = match.groups()
    else:
        _, name_part, round_part = match.groups()
        year = None
    round_part = round_part.strip()
    context = "(dated format)" if dated else "(undated format)"

    if not is_round_phrase(round_part):
        log.debug("Title matched %s shape but %r is not a known round", context, round_part)
        return None

    group = find_best_match(name_part.strip(), catalog, threshold, log=log, context=context)
    if group is None:
        log.warning("Matched %s but no conjunto found for name %r", context, name_part.strip())
        return None

    log.info("Found conjunto %s: %s in category %s", context, group.name, group.category)
    return ParsedRecord(
        year=year,
        group=group,
        round=round_part,
        is_alternative_format=True,
        catalog_score=1.0,
    )


def _dated_format(title: str, catalog: Catalog, log: logging.Logger, threshold: float) -> Optional[ParsedRecord]:
    return _explicit_format(title, catalog, log, threshold, dated=True)


def _undated_format(title: str, catalog: Catalog, log: logging.Logger, threshold: float) -> Optional[ParsedRecord]:
    return _explicit_format(title, catalog, log, threshold, dated=False)


def _legacy_liguilla_format(
    title: str, catalog: Catalog, log: logging.Logger, threshold: float
) -> Optional[ParsedRecord]:
    match = _LEGACY_PATTERN.match(title)
    if not match:
        return None
    stage, name_part, _ = match.groups()
    if not 1 <= int(stage) <= 6:
        return None

    group = find_best_match(name_part.strip(), catalog, threshold, log=log, context="(2015 format)")
    if group is None:
        log.warning("Matched 2015 Liguilla format but no conjunto found for name %r", name_part.strip())
        return None

    log.info("Found conjunto (2015 format): %s in category %s", group.name, group.category)
    return ParsedRecord(
        year=LEGACY_FORMAT_YEAR,
        group=group,
        round=LEGACY_FORMAT_ROUND,
        is_alternative_format=True,
        catalog_score=1.0,
    )


def _general_fallback(title: str, catalog: Catalog, log: logging.Logger, threshold: float) -> ParsedRecord:
    year_match = _YEAR_PATTERN.search(title)
    year = year_match.group(1) if year_match else None

    best, score = best_catalog_score(title, catalog)
    group = best if best is not None and score >= threshold else None
    near_miss = group is None and NEAR_MISS_FLOOR < score < threshold
    if near_miss and best is not None:
        log.debug("Closest conjunto %s scored %.3f, below threshold %.2f", best.name, score, threshold)

    if not year or group is None:
        log.info(
            "Could not identify both year and conjunto (year=%s, conjunto=%s)",
            year,
            group.name if group else None,
        )
        return ParsedRecord.empty(catalog_score=score, near_miss=near_miss)

    round_label = detect_round_in_title(title)
    log.debug("General parse: year=%s conjunto=%s round=%s", year, group.name, round_label)
    return ParsedRecord(year=year, group=group, round=round_label, catalog_score=score)


TITLE_RECOGNIZERS: Tuple[Recognizer, ...] = (
    _exclusion_filter,
    _dated_format,
    _undated_format,
    _legacy_liguilla_format,
    _general_fallback,
)


def parse_title(
    title: Optional[str],
    catalog: Catalog,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    log: Optional[logging.Logger] = None,
) -> ParsedRecord:
    """Parse ``title`` into a :class:`ParsedRecord`; never raises."""

    log = log or logger
    if not isinstance(title, str) or not title.strip():
        log.warning("Attempted to parse an empty title")
        return ParsedRecord.empty()

    log.info("Parsing video title: %s", title)
    for recognizer in TITLE_RECOGNIZERS:
        record = recognizer(title, catalog, log, threshold)
        if record is not None:
            return record
    return ParsedRecord.empty()


__all__ = [
    "EXCLUDED_KEYWORDS",
    "LEGACY_FORMAT_ROUND",
    "LEGACY_FORMAT_YEAR",
    "PLACEHOLDER_PREFIXES",
    "ParsedRecord",
    "TITLE_RECOGNIZERS",
    "is_excluded_title",
    "is_placeholder_title",
    "parse_title",
]
