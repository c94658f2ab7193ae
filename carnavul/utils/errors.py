"""Exception hierarchy and disposition tags shared across the package."""
from __future__ import annotations

from enum import Enum


class CarnavulError(Exception):
    """Base exception for carnavul failures."""


class FailureKind(str, Enum):
    """Tag stored on persisted tracking entries to explain their disposition."""

    UNPARSEABLE_TITLE = "unparseable_title"
    AMBIGUOUS_CATALOG_MATCH = "ambiguous_catalog_match"
    SUPERSEDED = "superseded"
    TRANSIENT_FAILURE = "transient_failure"
    DEFERRED_REVIEW = "deferred_review"


__all__ = ["CarnavulError", "FailureKind"]
