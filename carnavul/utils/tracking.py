"""Persistent bookkeeping for processed, deferred, ignored and failed videos.

All state lives under ``<base_dir>/.tracking``:

``downloaded.txt``
    yt-dlp ``--download-archive`` file. Read-only here; yt-dlp appends to it.
``check_later.json``
    Videos deferred for manual review. Setting ``"download": true`` on an
    entry lets the next ``--check-later`` run process it.
``ignored.json`` / ``failed.json``
    Diagnostic records; failures are retracted when the same id succeeds.

Collections are rewritten whole on every change, which is safe for a single
process only.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set


logger = logging.getLogger(__name__)

TRACKING_DIR_NAME = ".tracking"


@dataclass(frozen=True)
class TrackingFiles:
    """Directory layout of the tracking state for one download root."""

    root: Path

    @property
    def downloaded_path(self) -> Path:
        return self.root / "downloaded.txt"

    @property
    def check_later_path(self) -> Path:
        return self.root / "check_later.json"

    @property
    def ignored_path(self) -> Path:
        return self.root / "ignored.json"

    @property
    def failed_path(self) -> Path:
        return self.root / "failed.json"

    def json_paths(self) -> Iterator[Path]:
        yield self.check_later_path
        yield self.ignored_path
        yield self.failed_path


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


def init_tracking(base_dir: Path, *, log: Optional[logging.Logger] = None) -> TrackingFiles:
    """Create the tracking directory and files, repairing corrupt JSON collections."""

    log = log or logger
    files = TrackingFiles(root=Path(base_dir) / TRACKING_DIR_NAME)
    files.root.mkdir(parents=True, exist_ok=True)
    files.downloaded_path.touch(exist_ok=True)

    for path in files.json_paths():
        if not path.exists() or path.stat().st_size == 0:
            _atomic_write_text(path, "[]\n")
            continue
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log.warning("Tracking file %s was corrupted (%s); resetting to an empty list", path, exc)
            _atomic_write_text(path, "[]\n")
            continue
        if not isinstance(payload, list):
            log.warning("Tracking file %s did not hold a list; resetting to an empty list", path)
            _atomic_write_text(path, "[]\n")

    log.info("Tracking files ready under %s", files.root)
    return files


def load_archive_ids(path: Path, *, log: Optional[logging.Logger] = None) -> Set[str]:
    """Return the ids recorded in a yt-dlp download archive.

    Each non-blank line is whitespace separated (``youtube <id>``); the last
    token is taken as the id.
    """

    log = log or logger
    ids: Set[str] = set()
    path = Path(path)
    if not path.exists():
        log.info("Download archive %s does not exist yet", path)
        return ids
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        log.error("Failed to read download archive %s: %s", path, exc)
        return ids

    for line in content.splitlines():
        parts = line.split()
        if parts:
            ids.add(parts[-1])
    log.info("Loaded %d video ids from download archive %s", len(ids), path)
    return ids


class TrackingCollection:
    """A JSON array of loosely-typed entries stored in a single file."""

    def __init__(self, path: Path, *, log: Optional[logging.Logger] = None) -> None:
        self.path = Path(path)
        self._log = log or logger

    def __repr__(self) -> str:
        return f"TrackingCollection({str(self.path)!r})"

    def read(self) -> List[Any]:
        if not self.path.exists():
            self._log.warning("Tracking file %s does not exist, returning empty list", self.path)
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self._log.error("Failed to read tracking file %s: %s", self.path, exc)
            return []
        if not raw.strip():
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            self._log.warning("Tracking file %s is not valid JSON (%s); treating as empty", self.path, exc)
            return []
        if not isinstance(payload, list):
            self._log.warning("Tracking file %s did not contain a list; treating as empty", self.path)
            return []
        return payload

    def write(self, entries: List[Any]) -> bool:
        """Atomically replace the collection; non-list payloads are refused."""

        if not isinstance(entries, list):
            self._log.error("Refusing to write non-list data to tracking file %s", self.path)
            return False
        try:
            _atomic_write_text(self.path, json.dumps(entries, ensure_ascii=False, indent=2) + "\n")
        except (OSError, TypeError, ValueError) as exc:
            self._log.error("Failed to write tracking file %s: %s", self.path, exc)
            return False
        self._log.debug("Updated tracking file %s with %d entries", self.path, len(entries))
        return True

    def append(self, entry: Dict[str, Any]) -> bool:
        entries = self.read()
        entries.append(entry)
        written = self.write(entries)
        if written:
            self._log.debug("Added entry to %s: %s", self.path.name, entry.get("title") or entry.get("id"))
        return written

    def id_set(self) -> Set[str]:
        ids = {
            str(entry["id"])
            for entry in self.read()
            if isinstance(entry, dict) and entry.get("id")
        }
        self._log.debug("Loaded %d ids from %s", len(ids), self.path.name)
        return ids

    def remove_by_id(self, entry_id: Optional[str]) -> int:
        """Drop every entry whose ``id`` equals ``entry_id``; returns the count removed."""

        if not entry_id:
            self._log.warning("Attempted to remove an entry with an empty id from %s", self.path)
            return 0
        entries = self.read()
        remaining = [
            entry for entry in entries
            if not (isinstance(entry, dict) and entry.get("id") is not None and str(entry["id"]) == str(entry_id))
        ]
        removed = len(entries) - len(remaining)
        if removed:
            self.write(remaining)
            self._log.info("Removed %d entry/entries with id %s from %s", removed, entry_id, self.path.name)
        else:
            self._log.debug("No entry with id %s in %s", entry_id, self.path.name)
        return removed


@dataclass
class TrackingStore:
    """The three JSON collections plus the archive path for a download root."""

    files: TrackingFiles
    ignored: TrackingCollection
    failed: TrackingCollection
    check_later: TrackingCollection

    @classmethod
    def open(cls, base_dir: Path, *, log: Optional[logging.Logger] = None) -> "TrackingStore":
        files = init_tracking(base_dir, log=log)
        return cls(
            files=files,
            ignored=TrackingCollection(files.ignored_path, log=log),
            failed=TrackingCollection(files.failed_path, log=log),
            check_later=TrackingCollection(files.check_later_path, log=log),
        )

    def archive_ids(self, *, log: Optional[logging.Logger] = None) -> Set[str]:
        return load_archive_ids(self.files.downloaded_path, log=log)


__all__ = [
    "TRACKING_DIR_NAME",
    "TrackingCollection",
    "TrackingFiles",
    "TrackingStore",
    "init_tracking",
    "load_archive_ids",
]
