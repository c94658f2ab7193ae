from __future__ import annotations

import logging
import re
import unicodedata
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import requests
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from .catalog import CatalogEntry
from .errors import CarnavulError
from .video_sources import VideoMetadata


logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
MIN_DURATION_MINUTES = 30
# Short "fragmento" clips from before this year still qualify.
FRAGMENTO_CUTOFF_YEAR = 2005

_VIDEO_FORMAT = "bestvideo[height<=1080][ext=mp4]+bestaudio[ext=m4a]/best[height<=1080][ext=mp4]/best"
_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes" ?>'


class VideoDownloadError(CarnavulError):
    """Raised when yt-dlp fails to transfer a video."""


@dataclass(frozen=True)
class DownloadDecision:
    download: bool
    reason: str


@dataclass
class DownloadRequest:
    metadata: VideoMetadata
    group: CatalogEntry
    year: str
    round: Optional[str]
    output_dir: Path
    base_filename: str
    archive_path: Path


@dataclass
class DownloadOutcome:
    video_id: str
    nfo_path: Optional[Path]
    poster_path: Optional[Path]
    issues: List[Dict[str, object]] = field(default_factory=list)


def _ensure_session(session: Optional[requests.Session]) -> requests.Session:
    return session or requests.Session()


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _write_binary(path: Path, content: bytes) -> Path:
    _ensure_dir(path.parent)
    path.write_bytes(content)
    return path


def _write_text(path: Path, content: str) -> Path:
    _ensure_dir(path.parent)
    path.write_text(content, encoding="utf-8")
    return path


def _download_file(
    session: requests.Session,
    url: Optional[str],
    destination: Path,
    *,
    timeout: int = _DEFAULT_TIMEOUT,
) -> Tuple[Optional[Path], Optional[Dict[str, object]]]:
    if not url:
        return None, None

    response = session.get(url, timeout=timeout)
    if response.status_code in {401, 403, 404, 410, 451}:
        # Restricted artwork is treated as unavailable rather than fatal.
        return None, {
            "status_code": response.status_code,
            "url": url,
            "reason": "access_blocked",
        }
    response.raise_for_status()
    return _write_binary(destination, response.content), None


def _plain_lower(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def should_download(
    metadata: VideoMetadata,
    *,
    year: Optional[str],
    round: Optional[str],
    is_alternative_format: bool,
    log: Optional[logging.Logger] = None,
) -> DownloadDecision:
    """Decide whether a selected video is a full performance worth downloading.

    A missing or non-numeric duration (premieres, live streams) always defers.
    Competition-round uploads otherwise qualify. Anything else must last at least
    ``MIN_DURATION_MINUTES`` and must not be a ``resumen``; the one exception
    is a ``fragmento`` from before ``FRAGMENTO_CUTOFF_YEAR``.
    """

    log = log or logger
    try:
        duration_seconds = float(metadata.duration)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        log.warning("Video %s has invalid or missing duration: %r", metadata.id, metadata.duration)
        return DownloadDecision(False, f"Video has invalid duration: {metadata.duration}")

    if is_alternative_format and round:
        log.info("Video %s is a competition round (%s), will download", metadata.id, round)
        return DownloadDecision(True, "Competition round format")

    minutes = duration_seconds / 60
    title = _plain_lower(metadata.title)

    if minutes < MIN_DURATION_MINUTES:
        year_number = int(year) if year and str(year).isdigit() else None
        if "fragmento" in title and year_number and year_number < FRAGMENTO_CUTOFF_YEAR:
            log.info("Video %s is a fragmento before %d, will download", metadata.id, FRAGMENTO_CUTOFF_YEAR)
            return DownloadDecision(True, f"Fragmento before {FRAGMENTO_CUTOFF_YEAR}")
        return DownloadDecision(False, f"Video duration ({minutes:.1f} min) < {MIN_DURATION_MINUTES} min")

    if "resumen" in title:
        return DownloadDecision(False, "Title contains 'resumen'")

    log.debug("Video %s lasts %.1f min and is not a resumen, will download", metadata.id, minutes)
    return DownloadDecision(True, f"Duration > {MIN_DURATION_MINUTES} min and not a resumen")


_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|]+')


def build_base_filename(group: CatalogEntry, year: str, round: Optional[str] = None) -> str:
    """Return ``"<name> <year>[ - <round>]"`` with path-hostile characters removed."""

    stem = f"{group.name} {year}"
    if round:
        stem = f"{stem} - {round}"
    return re.sub(r"\s+", " ", _UNSAFE_FILENAME.sub(" ", stem)).strip()


def output_dir_for(base_dir: Path, year: str, group: CatalogEntry) -> Path:
    return Path(base_dir) / str(year) / _UNSAFE_FILENAME.sub(" ", group.category).strip()


def _sub(parent: ET.Element, tag: str, text: Optional[str], **attrs: str) -> ET.Element:
    element = ET.SubElement(parent, tag, attrs)
    element.text = text or ""
    return element


def generate_nfo(
    metadata: VideoMetadata,
    group: CatalogEntry,
    year: str,
    round: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> str:
    """Render a Kodi ``<movie>`` NFO document for a downloaded performance."""

    title = f"{group.name} {year} - {round}" if round else f"{group.name} {year}"
    sort_title = f"{group.name} {year} {round}" if round else f"{group.name} {year}"
    added = (now or datetime.now().astimezone()).isoformat(timespec="seconds")

    movie = ET.Element("movie")
    _sub(movie, "title", title)
    _sub(movie, "originaltitle", metadata.title)
    _sub(movie, "sorttitle", sort_title)
    _sub(movie, "year", year)
    _sub(movie, "genre", "Carnival")
    _sub(movie, "genre", group.category)
    if round:
        _sub(movie, "genre", round)
    _sub(movie, "plot", metadata.description)
    _sub(movie, "source", "YouTube")
    _sub(movie, "id", metadata.id)
    _sub(movie, "uniqueid", metadata.id, type="YouTube", default="true")
    _sub(movie, "dateadded", added)

    ET.indent(movie, space="    ")
    return f"{_XML_DECLARATION}\n{ET.tostring(movie, encoding='unicode')}\n"


class YtDlpDownloader:
    """Downloads a selected video with yt-dlp and writes its NFO and poster."""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        options: Optional[Mapping[str, Any]] = None,
        timeout: int = _DEFAULT_TIMEOUT,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._session = session
        self._options = dict(options or {})
        self._timeout = timeout
        self._log = log or logger

    def _ydl_options(self, request: DownloadRequest) -> Dict[str, Any]:
        return {
            "format": _VIDEO_FORMAT,
            "outtmpl": str(request.output_dir / f"{request.base_filename}.%(ext)s"),
            "writeinfojson": True,
            "download_archive": str(request.archive_path),
            "retries": 3,
            "fragment_retries": 3,
            **self._options,
        }

    def _run_yt_dlp(self, request: DownloadRequest) -> None:
        video_id = request.metadata.id
        try:
            with YoutubeDL(self._ydl_options(request)) as ydl:
                retcode = ydl.download([request.metadata.url])
        except DownloadError as exc:
            raise VideoDownloadError(f"yt-dlp failed for {video_id}: {exc}") from exc
        if retcode:
            raise VideoDownloadError(f"yt-dlp exited with code {retcode} for {video_id}")
        self._log.info("yt-dlp finished for %s", video_id)

    def download(self, request: DownloadRequest) -> DownloadOutcome:
        _ensure_dir(request.output_dir)
        self._log.info("Starting download of %s: %s", request.metadata.id, request.metadata.title)
        self._run_yt_dlp(request)

        issues: List[Dict[str, object]] = []
        nfo_path: Optional[Path] = request.output_dir / f"{request.base_filename}.nfo"
        if nfo_path.exists():
            self._log.debug("NFO already exists for %s at %s", request.metadata.id, nfo_path)
        else:
            content = generate_nfo(request.metadata, request.group, request.year, request.round)
            try:
                _write_text(nfo_path, content)
                self._log.info("Created NFO for %s at %s", request.metadata.id, nfo_path)
            except OSError as exc:
                self._log.error("Failed to write NFO for %s: %s", request.metadata.id, exc)
                issues.append({"asset": "nfo", "reason": "write_failed", "error": str(exc)})
                nfo_path = None

        poster_path = self._fetch_poster(request, issues)
        return DownloadOutcome(
            video_id=request.metadata.id,
            nfo_path=nfo_path,
            poster_path=poster_path,
            issues=issues,
        )

    def _fetch_poster(self, request: DownloadRequest, issues: List[Dict[str, object]]) -> Optional[Path]:
        destination = request.output_dir / f"{request.base_filename}-poster.jpg"
        if destination.exists():
            return destination
        if not request.metadata.thumbnail:
            issues.append({"asset": "poster", "reason": "missing"})
            return None

        session = _ensure_session(self._session)
        try:
            poster_path, issue = _download_file(
                session,
                request.metadata.thumbnail,
                destination,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            self._log.warning("Poster download failed for %s: %s", request.metadata.id, exc)
            issues.append({"asset": "poster", "reason": "request_failed", "error": str(exc)})
            return None
        finally:
            if self._session is None:
                session.close()
        if issue:
            issue.setdefault("asset", "poster")
            issues.append(issue)
        return poster_path


__all__ = [
    "DownloadDecision",
    "DownloadOutcome",
    "DownloadRequest",
    "FRAGMENTO_CUTOFF_YEAR",
    "MIN_DURATION_MINUTES",
    "VideoDownloadError",
    "YtDlpDownloader",
    "build_base_filename",
    "generate_nfo",
    "output_dir_for",
    "should_download",
]
