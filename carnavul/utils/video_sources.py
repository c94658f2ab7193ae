"""YouTube listing and metadata lookups through the ``yt_dlp`` library."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from .errors import CarnavulError


logger = logging.getLogger(__name__)

_BASE_OPTIONS: Dict[str, Any] = {
    "quiet": True,
    "no_warnings": True,
    "skip_download": True,
}


class SourceListingError(CarnavulError):
    """Raised when a channel or playlist listing cannot be retrieved at all."""


class MetadataFetchError(CarnavulError):
    """Raised when metadata for a single video cannot be retrieved."""


@dataclass(frozen=True)
class TitleStub:
    id: str
    title: str
    url: str


@dataclass(frozen=True)
class VideoMetadata:
    id: str
    title: str
    url: str
    duration: Optional[float] = None
    description: str = ""
    thumbnail: Optional[str] = None

    @classmethod
    def from_info(cls, info: Mapping[str, Any], *, fallback_url: str) -> "VideoMetadata":
        video_id = info.get("id")
        if not video_id:
            raise MetadataFetchError(f"Metadata for {fallback_url} has no video id")
        return cls(
            id=str(video_id),
            title=str(info.get("title") or ""),
            url=str(info.get("webpage_url") or info.get("original_url") or fallback_url),
            duration=info.get("duration"),
            description=str(info.get("description") or ""),
            thumbnail=info.get("thumbnail"),
        )


def _entry_url(entry: Mapping[str, Any]) -> str:
    url = entry.get("url") or entry.get("webpage_url")
    if url:
        return str(url)
    return f"https://www.youtube.com/watch?v={entry['id']}"


class YtDlpVideoSource:
    """Metadata source backed by ``yt_dlp.YoutubeDL`` extraction."""

    def __init__(self, options: Optional[Mapping[str, Any]] = None, *, log: Optional[logging.Logger] = None) -> None:
        self._options = {**_BASE_OPTIONS, **(options or {})}
        self._log = log or logger

    def _extract(self, url: str, extra: Mapping[str, Any]) -> Dict[str, Any]:
        with YoutubeDL({**self._options, **extra}) as ydl:
            info = ydl.extract_info(url, download=False)
            if not isinstance(info, dict):
                raise ExtractorError(f"yt-dlp returned no information for {url}")
            return ydl.sanitize_info(info)

    def list_entries(self, url: str) -> List[TitleStub]:
        """Return the videos of a channel or playlist, oldest first."""

        self._log.debug("Fetching flat playlist for %s", url)
        try:
            info = self._extract(url, {"extract_flat": "in_playlist", "playlistreverse": True})
        except (DownloadError, ExtractorError) as exc:
            raise SourceListingError(f"Could not list videos for {url}: {exc}") from exc

        stubs: List[TitleStub] = []
        for entry in info.get("entries") or []:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            stubs.append(
                TitleStub(
                    id=str(entry["id"]),
                    title=str(entry.get("title") or ""),
                    url=_entry_url(entry),
                )
            )
        self._log.info("Found %d videos in %s", len(stubs), url)
        return stubs

    def fetch_metadata(self, url: str) -> VideoMetadata:
        self._log.debug("Fetching full metadata for %s", url)
        try:
            info = self._extract(url, {})
        except (DownloadError, ExtractorError) as exc:
            raise MetadataFetchError(f"Could not fetch metadata for {url}: {exc}") from exc
        metadata = VideoMetadata.from_info(info, fallback_url=url)
        self._log.debug("Metadata for %s: duration=%s", metadata.id, metadata.duration)
        return metadata


__all__ = [
    "MetadataFetchError",
    "SourceListingError",
    "TitleStub",
    "VideoMetadata",
    "YtDlpVideoSource",
]
