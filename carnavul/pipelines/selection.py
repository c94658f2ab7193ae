"""Group parsed videos by (year, conjunto) and keep one recording per group.

A channel usually carries several uploads of the same performance: the
Primera Rueda, the Segunda Rueda and sometimes the Liguilla. Only the latest
round is kept. Everything else becomes a :class:`Rejection` so it is recorded
with a reason instead of silently dropped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, Iterable, List, Optional, Tuple

from carnavul.utils.catalog import DEFAULT_THRESHOLD, Catalog, CatalogEntry
from carnavul.utils.errors import FailureKind
from carnavul.utils.rounds import round_priority
from carnavul.utils.text_matching import normalize_text
from carnavul.utils.title_parser import ParsedRecord, is_excluded_title, parse_title
from carnavul.utils.video_sources import TitleStub


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateVideo:
    id: str
    title: str
    url: str
    year: str
    group: CatalogEntry
    round: Optional[str]
    is_alternative_format: bool
    round_priority: int

    @classmethod
    def from_parsed(cls, stub: TitleStub, parsed: ParsedRecord, year: str) -> "CandidateVideo":
        if parsed.group is None or not year:
            raise ValueError(f"Cannot build a candidate for {stub.id} without year and conjunto")
        return cls(
            id=stub.id,
            title=stub.title,
            url=stub.url,
            year=year,
            group=parsed.group,
            round=parsed.round,
            is_alternative_format=parsed.is_alternative_format,
            round_priority=round_priority(parsed.round),
        )

    @property
    def key(self) -> Tuple[str, str]:
        return self.year, self.group.name

    def parsed_info(self) -> Dict[str, object]:
        return {
            "year": self.year,
            "conjunto": self.group.as_dict(),
            "round": self.round,
            "isAlternativeFormat": self.is_alternative_format,
        }


@dataclass
class Rejection:
    id: str
    title: str
    url: str
    reason: str
    kind: FailureKind
    details: Dict[str, object] = field(default_factory=dict)

    def to_entry(self) -> Dict[str, object]:
        """Render the persisted ignored-collection entry."""

        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "reason": self.reason,
            "kind": self.kind.value,
            **self.details,
        }


CandidateGroups = Dict[str, Dict[str, List[CandidateVideo]]]


@dataclass
class CollectionResult:
    groups: CandidateGroups = field(default_factory=dict)
    rejections: List[Rejection] = field(default_factory=list)
    skipped: List[TitleStub] = field(default_factory=list)
    year_conflicts: List[Dict[str, str]] = field(default_factory=list)

    @property
    def candidate_count(self) -> int:
        return sum(len(videos) for by_group in self.groups.values() for videos in by_group.values())


@dataclass
class SelectionResult:
    winners: List[CandidateVideo] = field(default_factory=list)
    rejections: List[Rejection] = field(default_factory=list)
    skipped_archived_groups: List[Tuple[str, str]] = field(default_factory=list)


def resolve_effective_year(parsed_year: Optional[str], forced_year: Optional[str]) -> Tuple[Optional[str], bool]:
    """Apply a forced year; returns the year to use and whether it overrode a different parsed year."""

    if not forced_year:
        return parsed_year, False
    conflict = bool(parsed_year) and parsed_year != forced_year
    return forced_year, conflict


def _missing_fields(parsed: ParsedRecord, effective_year: Optional[str]) -> List[str]:
    missing: List[str] = []
    if parsed.group is None:
        missing.append("conjunto")
    if not effective_year:
        missing.append("year (from title or --year flag)")
    return missing


def collect_candidates(
    stubs: Iterable[TitleStub],
    catalog: Catalog,
    forced_year: Optional[str] = None,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    log: Optional[logging.Logger] = None,
) -> CollectionResult:
    """Parse every stub and bucket the resolvable ones by year and conjunto name."""

    log = log or logger
    result = CollectionResult()

    for stub in stubs:
        if is_excluded_title(stub.title):
            log.debug("Skipping placeholder or non-competition title: %r (%s)", stub.title, stub.id)
            result.skipped.append(stub)
            continue

        parsed = parse_title(stub.title, catalog, threshold=threshold, log=log)
        effective_year, conflict = resolve_effective_year(parsed.year, forced_year)
        if conflict:
            log.warning("Overriding parsed year %s with forced year %s for %r", parsed.year, forced_year, stub.title)
            result.year_conflicts.append(
                {"id": stub.id, "title": stub.title, "parsedYear": str(parsed.year), "forcedYear": str(forced_year)}
            )

        missing = _missing_fields(parsed, effective_year)
        if missing:
            kind = (
                FailureKind.AMBIGUOUS_CATALOG_MATCH
                if parsed.group is None and parsed.near_miss
                else FailureKind.UNPARSEABLE_TITLE
            )
            reason = f"Could not reliably identify {' and '.join(missing)} for title: \"{stub.title}\""
            log.info("%s, marking as ignored", reason)
            result.rejections.append(
                Rejection(
                    id=stub.id,
                    title=stub.title,
                    url=stub.url,
                    reason=reason,
                    kind=kind,
                    details={
                        "parsedInfoRaw": parsed.as_dict(),
                        "catalogScore": round(parsed.catalog_score, 3),
                        "forcedYearProvided": forced_year,
                        "normalizedTitle": normalize_text(stub.title),
                    },
                )
            )
            continue

        candidate = CandidateVideo.from_parsed(stub, parsed, effective_year)  # type: ignore[arg-type]
        result.groups.setdefault(candidate.year, {}).setdefault(candidate.group.name, []).append(candidate)
        log.debug(
            "Collected %s %s (round: %s, priority %d) - %s",
            candidate.group.name,
            candidate.year,
            candidate.round or "N/A",
            candidate.round_priority,
            candidate.id,
        )

    log.info(
        "Collected %d candidates in %d year(s); %d ignored, %d skipped",
        result.candidate_count,
        len(result.groups),
        len(result.rejections),
        len(result.skipped),
    )
    return result


def _superseded_reason(video: CandidateVideo, winner: CandidateVideo, group_name: str, year: str) -> str:
    if video.round_priority == winner.round_priority:
        return (
            f"Skipped: same round priority ({video.round_priority}) as chosen video {winner.id}, "
            f"first-seen candidate kept for {group_name} {year}"
        )
    return (
        f"Skipped: lower round priority ({video.round_priority}) compared to chosen video "
        f"{winner.id} (priority {winner.round_priority}) for {group_name} {year}"
    )


def select_winners(
    groups: CandidateGroups,
    archived_ids: AbstractSet[str] = frozenset(),
    *,
    log: Optional[logging.Logger] = None,
) -> SelectionResult:
    """Pick the highest-round candidate of every (year, conjunto) bucket.

    Ties keep the first-seen candidate. When the chosen candidate is already
    archived the whole bucket is done: lower rounds are never downloaded in
    its place.
    """

    log = log or logger
    result = SelectionResult()

    for year, by_group in groups.items():
        for group_name, videos in by_group.items():
            if not videos:
                continue
            winner = max(videos, key=lambda video: video.round_priority)
            log.info(
                "Group %s %s: chose %s (round %s, priority %d) out of %d",
                group_name,
                year,
                winner.id,
                winner.round or "N/A",
                winner.round_priority,
                len(videos),
            )

            for video in videos:
                if video is winner:
                    continue
                result.rejections.append(
                    Rejection(
                        id=video.id,
                        title=video.title,
                        url=video.url,
                        reason=_superseded_reason(video, winner, group_name, year),
                        kind=FailureKind.SUPERSEDED,
                        details={"supersededBy": winner.id, "parsedInfo": video.parsed_info()},
                    )
                )

            if winner.id in archived_ids:
                log.info(
                    "Highest priority video %s for %s %s is already archived; skipping the group",
                    winner.id,
                    group_name,
                    year,
                )
                result.skipped_archived_groups.append((year, group_name))
                continue
            result.winners.append(winner)

    return result


__all__ = [
    "CandidateGroups",
    "CandidateVideo",
    "CollectionResult",
    "Rejection",
    "SelectionResult",
    "collect_candidates",
    "resolve_effective_year",
    "select_winners",
]
