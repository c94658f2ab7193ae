"""Conjunto catalog loading and fuzzy best-match lookup."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import CarnavulError
from .text_matching import normalize_text, similarity


logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.85
# Best scores above this floor but under the threshold are reported as near misses.
NEAR_MISS_FLOOR = 0.5

Catalog = Mapping[str, Sequence[str]]


class ConfigError(CarnavulError):
    """Raised when the conjunto catalog cannot be loaded or is malformed."""


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    category: str

    def as_dict(self) -> Dict[str, str]:
        return {"name": self.name, "category": self.category}

    @classmethod
    def from_dict(cls, payload: object) -> Optional["CatalogEntry"]:
        if not isinstance(payload, Mapping):
            return None
        name = payload.get("name")
        category = payload.get("category")
        if not isinstance(name, str) or not name or not isinstance(category, str) or not category:
            return None
        return cls(name=name, category=category)


def load_catalog(path: Path, *, log: Optional[logging.Logger] = None) -> Dict[str, List[str]]:
    """Read and validate the ``category -> [conjunto names]`` JSON file."""

    log = log or logger
    path = Path(path)
    log.info("Loading catalog from %s", path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read catalog {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Catalog {path} is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Catalog must be a JSON object mapping categories to lists of names")
    if not payload:
        raise ConfigError("Catalog must contain at least one category")

    catalog: Dict[str, List[str]] = {}
    for category, names in payload.items():
        if not isinstance(names, list) or not all(isinstance(name, str) for name in names):
            raise ConfigError(f"Category '{category}' must contain a list of conjunto names")
        if not names:
            log.warning("Category '%s' has no conjuntos defined", category)
        catalog[category] = list(names)

    log.info("Catalog loaded with %d categories", len(catalog))
    return catalog


def best_catalog_score(text: str, catalog: Catalog) -> Tuple[Optional[CatalogEntry], float]:
    """Return the highest-scoring entry for ``text`` regardless of threshold.

    Entries are scanned in catalog order and only a strictly higher score
    replaces the current best, so the first entry reaching the maximum wins.
    """

    if not normalize_text(text):
        return None, 0.0

    best: Optional[CatalogEntry] = None
    best_score = 0.0
    for category, names in catalog.items():
        for name in names:
            # A name with no alphanumerics would be contained in every title.
            if not normalize_text(name):
                continue
            score = similarity(text, name)
            if score > best_score:
                best = CatalogEntry(name=name, category=category)
                best_score = score
    return best, best_score


def find_best_match(
    text: str,
    catalog: Catalog,
    threshold: float = DEFAULT_THRESHOLD,
    *,
    log: Optional[logging.Logger] = None,
    context: str = "",
) -> Optional[CatalogEntry]:
    """Return the best catalog entry for ``text`` when it scores ``>= threshold``."""

    log = log or logger
    entry, score = best_catalog_score(text, catalog)
    if entry is not None and score >= threshold:
        log.debug("Best match %s: %s (score %.3f)", context, entry.name, score)
        return entry
    if score > NEAR_MISS_FLOOR and entry is not None:
        log.debug(
            "No conjunto match %s above threshold %.2f; closest was %s (score %.3f)",
            context,
            threshold,
            entry.name,
            score,
        )
    return None


__all__ = [
    "Catalog",
    "CatalogEntry",
    "ConfigError",
    "DEFAULT_THRESHOLD",
    "NEAR_MISS_FLOOR",
    "best_catalog_score",
    "find_best_match",
    "load_catalog",
]
