"""Channel, single-video and review-queue workflows.

This module wires the parser, the selector and the tracking store to the
external collaborators (a :class:`VideoSource` for listings and metadata, a
:class:`Downloader` for the transfer itself).

Design goals
------------
- Process one video at a time, waiting for each download before starting the
  next, so group selection is reproducible and the source is not hammered.
- Persist every disposition as soon as it is known; a crash loses at most the
  video in flight.
- A failure on one video is recorded in ``failed.json`` and never aborts the
  batch. Only an unreadable channel listing is fatal.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from carnavul.utils.catalog import DEFAULT_THRESHOLD, Catalog, CatalogEntry
from carnavul.utils.downloaders import (
    DownloadOutcome,
    DownloadRequest,
    build_base_filename,
    output_dir_for,
    should_download,
)
from carnavul.utils.errors import FailureKind
from carnavul.utils.title_parser import parse_title
from carnavul.utils.tracking import TrackingStore
from carnavul.utils.video_sources import TitleStub, VideoMetadata

from .selection import CandidateVideo, collect_candidates, select_winners


logger = logging.getLogger(__name__)


class VideoSource(Protocol):
    def list_entries(self, url: str) -> List[TitleStub]:
        ...

    def fetch_metadata(self, url: str) -> VideoMetadata:
        ...


class Downloader(Protocol):
    def download(self, request: DownloadRequest) -> DownloadOutcome:
        ...


@dataclass
class ChannelStats:
    total: int = 0
    skipped_invalid: int = 0
    ignored_no_match: int = 0
    year_overrides: int = 0
    skipped_lower_round: int = 0
    skipped_group_archived: int = 0
    processed: int = 0
    downloaded: int = 0
    check_later: int = 0
    failed: int = 0
    categories: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CheckLaterStats:
    total_items: int = 0
    processed: int = 0
    downloaded: int = 0
    skipped_already_downloaded: int = 0
    ignored_no_match: int = 0
    failed: int = 0
    kept_for_review: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VideoResult:
    status: str
    reason: Optional[str] = None
    error: Optional[str] = None
    path: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def _item_year(item: Dict[str, Any]) -> Optional[str]:
    value = item.get("year")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    text = str(value).strip()
    return text or None


class CarnivalPipeline:
    """Sequential orchestration of one run against a download root."""

    def __init__(
        self,
        base_dir: Path,
        catalog: Catalog,
        store: TrackingStore,
        *,
        source: VideoSource,
        downloader: Downloader,
        archived_ids: Optional[Set[str]] = None,
        threshold: float = DEFAULT_THRESHOLD,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.catalog = catalog
        self.store = store
        self.source = source
        self.downloader = downloader
        self.threshold = threshold
        self._log = log or logger
        self.archived_ids: Set[str] = (
            set(archived_ids) if archived_ids is not None else store.archive_ids(log=self._log)
        )

    # --- shared helpers ---

    def _build_request(
        self,
        metadata: VideoMetadata,
        group: CatalogEntry,
        year: str,
        round_label: Optional[str],
    ) -> DownloadRequest:
        return DownloadRequest(
            metadata=metadata,
            group=group,
            year=year,
            round=round_label,
            output_dir=output_dir_for(self.base_dir, year, group),
            base_filename=build_base_filename(group, year, round_label),
            archive_path=self.store.files.downloaded_path,
        )

    def _download(self, request: DownloadRequest, failed_ids: Set[str]) -> DownloadOutcome:
        outcome = self.downloader.download(request)
        for issue in outcome.issues:
            self._log.warning("Sidecar issue for %s: %s", outcome.video_id, issue)
        self.archived_ids.add(request.metadata.id)
        if request.metadata.id in failed_ids:
            self.store.failed.remove_by_id(request.metadata.id)
            failed_ids.discard(request.metadata.id)
            self._log.info("Removed %s from failed list after a successful download", request.metadata.id)
        return outcome

    def _record_failure(self, entry: Dict[str, Any], error: BaseException, context: str) -> None:
        message = f"{context}: {error}"
        self.store.failed.append(
            {
                **entry,
                "reason": message,
                "error": message,
                "kind": FailureKind.TRANSIENT_FAILURE.value,
            }
        )

    def _defer(self, entry: Dict[str, Any], deferred_ids: Set[str]) -> None:
        video_id = entry.get("id")
        if video_id in deferred_ids:
            self._log.info("Video %s is already waiting in the review list", video_id)
            return
        self.store.check_later.append(
            {**entry, "kind": FailureKind.DEFERRED_REVIEW.value, "download": False}
        )
        if video_id:
            deferred_ids.add(str(video_id))

    # --- channel ---

    def process_channel(self, channel_url: str, forced_year: Optional[str] = None) -> ChannelStats:
        """Download the highest available round of every conjunto/year in a channel."""

        log = self._log
        stats = ChannelStats()
        log.info("Processing channel/playlist %s (selecting highest round per conjunto/year)", channel_url)
        if forced_year:
            log.info("Using forced year %s for all videos", forced_year)
        else:
            log.warning("No forced year given; titles without a year will be ignored")

        failed_ids = self.store.failed.id_set()
        deferred_ids = self.store.check_later.id_set()

        # Listing failures are fatal and propagate.
        stubs = self.source.list_entries(channel_url)
        stats.total = len(stubs)
        if not stubs:
            log.warning("No video entries found for %s", channel_url)
            return stats

        collection = collect_candidates(
            stubs,
            self.catalog,
            forced_year,
            threshold=self.threshold,
            log=log,
        )
        stats.skipped_invalid = len(collection.skipped)
        stats.year_overrides = len(collection.year_conflicts)
        if stats.year_overrides:
            log.warning(
                "Forced year %s replaced a different title year for %d video(s)",
                forced_year,
                stats.year_overrides,
            )
        for rejection in collection.rejections:
            self.store.ignored.append(rejection.to_entry())
            stats.ignored_no_match += 1

        selection = select_winners(collection.groups, self.archived_ids, log=log)
        for rejection in selection.rejections:
            self.store.ignored.append(rejection.to_entry())
            stats.skipped_lower_round += 1
        stats.skipped_group_archived = len(selection.skipped_archived_groups)

        for index, winner in enumerate(selection.winners, start=1):
            stats.processed += 1
            log.info("(%d/%d) Processing %s: %s", index, len(selection.winners), winner.id, winner.title)
            self._process_winner(winner, stats, failed_ids, deferred_ids)

        log.info("Channel processing finished: %s", stats.as_dict())
        breakdown = stats.downloaded + stats.check_later + stats.failed
        if breakdown != stats.processed:
            log.warning("Processed breakdown (%d) does not match processed count (%d)", breakdown, stats.processed)
        return stats

    def _process_winner(
        self,
        winner: CandidateVideo,
        stats: ChannelStats,
        failed_ids: Set[str],
        deferred_ids: Set[str],
    ) -> None:
        base_entry: Dict[str, Any] = {
            "id": winner.id,
            "title": winner.title,
            "url": winner.url,
            "year": winner.year,
            "conjunto": winner.group.as_dict(),
            "round": winner.round,
        }
        try:
            metadata = self.source.fetch_metadata(winner.url)
            decision = should_download(
                metadata,
                year=winner.year,
                round=winner.round,
                is_alternative_format=winner.is_alternative_format,
                log=self._log,
            )
            if not decision.download:
                self._log.info("Video %s marked for check later: %s", winner.id, decision.reason)
                self._defer(
                    {
                        **base_entry,
                        "title": metadata.title or winner.title,
                        "reason": decision.reason,
                        "duration": metadata.duration,
                    },
                    deferred_ids,
                )
                stats.check_later += 1
                return

            request = self._build_request(metadata, winner.group, winner.year, winner.round)
            self._download(request, failed_ids)
        except Exception as exc:  # noqa: BLE001
            self._log.error("Failed to process %s (%s): %s", winner.id, winner.title, exc)
            self._record_failure(base_entry, exc, "Processing error")
            stats.failed += 1
            return

        stats.downloaded += 1
        stats.categories[winner.group.category] = stats.categories.get(winner.group.category, 0) + 1
        self._log.info("Successfully processed %s", winner.id)

    # --- single video ---

    def process_single_video(self, video_url: str, forced_year: Optional[str] = None) -> VideoResult:
        """Process one URL; a year in the title wins over ``forced_year``."""

        log = self._log
        failed_ids = self.store.failed.id_set()
        deferred_ids = self.store.check_later.id_set()
        log.info("Processing single video %s", video_url)

        try:
            metadata = self.source.fetch_metadata(video_url)
        except Exception as exc:  # noqa: BLE001
            log.error("Failed to fetch metadata for %s: %s", video_url, exc)
            self._record_failure(
                {"id": None, "title": None, "url": video_url, "forcedYearAttempted": forced_year},
                exc,
                "Processing error",
            )
            return VideoResult(status="failed", error=f"Processing error: {exc}")

        already_archived = metadata.id in self.archived_ids
        if already_archived:
            log.info("Video %s is in the download archive; only the NFO will be ensured", metadata.id)

        parsed = parse_title(metadata.title, self.catalog, threshold=self.threshold, log=log)
        effective_year = parsed.year
        if not effective_year and forced_year:
            log.info("Using --year %s as fallback since the title has no year", forced_year)
            effective_year = forced_year
        elif parsed.year and forced_year and parsed.year != forced_year:
            log.warning("Year %s found in title takes precedence over --year %s", parsed.year, forced_year)

        if not effective_year or parsed.group is None:
            missing = []
            if not effective_year:
                missing.append("year (from title or --year flag)")
            if parsed.group is None:
                missing.append("conjunto")
            reason = f"Could not identify {' and '.join(missing)} in title: \"{metadata.title}\""
            log.warning("%s, marking as ignored", reason)
            kind = FailureKind.AMBIGUOUS_CATALOG_MATCH if parsed.near_miss else FailureKind.UNPARSEABLE_TITLE
            self.store.ignored.append(
                {
                    "id": metadata.id,
                    "title": metadata.title,
                    "url": video_url,
                    "reason": reason,
                    "kind": kind.value,
                    "parsedInfoRaw": parsed.as_dict(),
                    "forcedYearAttempted": forced_year,
                }
            )
            return VideoResult(status="ignored", reason=reason)

        group = parsed.group
        base_entry: Dict[str, Any] = {
            "id": metadata.id,
            "title": metadata.title,
            "url": video_url,
            "year": effective_year,
            "conjunto": group.as_dict(),
            "round": parsed.round,
        }
        decision = should_download(
            metadata,
            year=effective_year,
            round=parsed.round,
            is_alternative_format=parsed.is_alternative_format,
            log=log,
        )
        if not decision.download and not already_archived:
            log.info("Video %s marked for check later: %s", metadata.id, decision.reason)
            self._defer({**base_entry, "reason": decision.reason, "duration": metadata.duration}, deferred_ids)
            return VideoResult(status="check_later", reason=decision.reason)

        request = self._build_request(metadata, group, effective_year, parsed.round)
        try:
            outcome = self._download(request, failed_ids)
        except Exception as exc:  # noqa: BLE001
            log.error("Failed to download %s: %s", metadata.id, exc)
            self._record_failure(base_entry, exc, "Download error")
            return VideoResult(status="failed", error=str(exc))

        return VideoResult(
            status="skipped" if already_archived else "downloaded",
            reason="Already in download archive" if already_archived else None,
            path=str(outcome.nfo_path) if outcome.nfo_path else None,
        )

    # --- review queue ---

    def _resolve_check_later_item(
        self,
        item: Dict[str, Any],
        metadata: VideoMetadata,
    ) -> Tuple[Optional[str], Optional[CatalogEntry], Optional[str]]:
        """Combine the entry's stored facts with the current title; stored facts win."""

        log = self._log
        parsed = parse_title(metadata.title, self.catalog, threshold=self.threshold, log=log)
        year, group, round_label = parsed.year, parsed.group, parsed.round

        item_year = _item_year(item)
        if item_year:
            if parsed.year and parsed.year != item_year:
                log.warning("Year %s from the review list overrides %s from the title", item_year, parsed.year)
            year = item_year

        item_group = CatalogEntry.from_dict(item.get("conjunto"))
        if item_group is not None:
            if parsed.group and parsed.group.name != item_group.name:
                log.warning("Conjunto %s from the review list overrides %s", item_group.name, parsed.group.name)
            group = item_group

        if isinstance(item.get("round"), str):
            round_label = item["round"]
        return year, group, round_label

    def process_check_later(self) -> CheckLaterStats:
        """Process review entries flagged with ``"download": true``; keep the rest untouched."""

        log = self._log
        stats = CheckLaterStats()
        failed_ids = self.store.failed.id_set()

        items = self.store.check_later.read()
        stats.total_items = len(items)
        log.info("Found %d items in the review list", stats.total_items)
        remaining: List[Any] = []

        for index, item in enumerate(items):
            if not isinstance(item, dict) or not all(item.get(key) for key in ("id", "url", "title")):
                log.warning("Keeping invalid review entry untouched: %r", item)
                remaining.append(item)
                stats.kept_for_review += 1
                continue
            if item.get("download") is not True:
                remaining.append(item)
                stats.kept_for_review += 1
                continue

            stats.processed += 1
            self._process_check_later_item(item, stats, failed_ids)
            # Finished entries leave the queue immediately.
            self.store.check_later.write(remaining + items[index + 1:])

        self.store.check_later.write(remaining)
        log.info("Review list processed: %s (%d items remain)", stats.as_dict(), len(remaining))
        return stats

    def _process_check_later_item(
        self,
        item: Dict[str, Any],
        stats: CheckLaterStats,
        failed_ids: Set[str],
    ) -> None:
        video_id = str(item["id"])
        if video_id in self.archived_ids:
            self._log.info("Video %s already downloaded, removing it from the review list", video_id)
            stats.skipped_already_downloaded += 1
            return

        try:
            metadata = self.source.fetch_metadata(item["url"])
            year, group, round_label = self._resolve_check_later_item(item, metadata)
            if not year or group is None:
                missing = [name for name, value in (("year", year), ("conjunto", group)) if not value]
                reason = (
                    f"Could not identify {' or '.join(missing)} from the current title or the review entry "
                    f"(current title: \"{metadata.title}\")"
                )
                self._log.warning("%s, marking %s as ignored", reason, video_id)
                self.store.ignored.append(
                    {
                        **item,
                        "reason": reason,
                        "kind": FailureKind.UNPARSEABLE_TITLE.value,
                        "currentTitle": metadata.title,
                    }
                )
                stats.ignored_no_match += 1
                return

            request = self._build_request(metadata, group, year, round_label)
            self._download(request, failed_ids)
        except Exception as exc:  # noqa: BLE001
            self._log.error("Failed to process review entry %s: %s", video_id, exc)
            self._record_failure(item, exc, "Check later processing error")
            stats.failed += 1
            return

        stats.downloaded += 1
        self._log.info("Successfully processed review entry %s", video_id)


__all__ = [
    "CarnivalPipeline",
    "ChannelStats",
    "CheckLaterStats",
    "Downloader",
    "VideoResult",
    "VideoSource",
]
