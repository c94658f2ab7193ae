#!/usr/bin/env python
"""Download Uruguayan carnival performances from YouTube.

Usage:
    python scripts/carnavul_downloader.py --channel "https://www.youtube.com/@canal/videos"
    python scripts/carnavul_downloader.py --channel URL --year 2019
    python scripts/carnavul_downloader.py --video "https://www.youtube.com/watch?v=..."
    python scripts/carnavul_downloader.py --check-later

Defaults for ``--dir``, ``--config`` and ``--log-level`` come from
``CARNAVUL_DIR``, ``CARNAVUL_CONFIG`` and ``CARNAVUL_LOG_LEVEL`` (``.env`` is
honoured).
"""

# ruff: noqa: E402

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from carnavul.pipelines.carnival_pipeline import CarnivalPipeline
from carnavul.utils.catalog import ConfigError, load_catalog
from carnavul.utils.downloaders import YtDlpDownloader
from carnavul.utils.env import Settings
from carnavul.utils.logging_setup import configure_logging
from carnavul.utils.tracking import TrackingStore
from carnavul.utils.video_sources import SourceListingError, YtDlpVideoSource

MIN_YEAR = 1900
MAX_YEAR = 2100

logger = logging.getLogger("carnavul")


def _year(value: str) -> str:
    text = value.strip()
    if not text.isdigit() or len(text) != 4:
        raise argparse.ArgumentTypeError("must be a four-digit year")
    if not MIN_YEAR <= int(text) <= MAX_YEAR:
        raise argparse.ArgumentTypeError(f"must be between {MIN_YEAR} and {MAX_YEAR}")
    return text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--channel", metavar="URL", help="channel or playlist to scan")
    action.add_argument("--video", metavar="URL", help="single video to process")
    action.add_argument(
        "--check-later",
        action="store_true",
        help="process review entries marked with \"download\": true",
    )
    parser.add_argument("--dir", type=Path, default=None, help="download root (default: CARNAVUL_DIR or .)")
    parser.add_argument("--config", type=Path, default=None, help="conjuntos catalog JSON")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="console log level",
    )
    parser.add_argument(
        "--year",
        type=_year,
        default=None,
        help="year to assume for --channel titles (overrides parsed years) or fallback for --video",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not (args.channel or args.video or args.check_later):
        parser.print_help()
        return 2

    try:
        settings = Settings.from_env()
    except ValueError as exc:
        print(f"Invalid environment configuration: {exc}", file=sys.stderr)
        return 1
    base_dir: Path = (args.dir or settings.base_dir).resolve()
    config_path: Path = args.config or settings.config_path
    try:
        configure_logging(args.log_level or settings.log_level, base_dir)
    except ValueError as exc:
        print(f"Invalid log level: {exc}", file=sys.stderr)
        return 1

    if args.year and args.check_later:
        logger.warning("--year is ignored with --check-later; stored entry data is used instead")

    try:
        catalog = load_catalog(config_path)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1

    try:
        store = TrackingStore.open(base_dir)
    except OSError as exc:
        logger.error("Cannot prepare tracking files under %s: %s", base_dir, exc)
        return 1

    pipeline = CarnivalPipeline(
        base_dir,
        catalog,
        store,
        source=YtDlpVideoSource(),
        downloader=YtDlpDownloader(),
        threshold=settings.match_threshold,
    )
    logger.info("Download root: %s", base_dir)

    try:
        if args.channel:
            result = pipeline.process_channel(args.channel, args.year).as_dict()
        elif args.video:
            result = pipeline.process_single_video(args.video, args.year).as_dict()
        else:
            result = pipeline.process_check_later().as_dict()
    except SourceListingError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error: %s", exc)
        return 1

    print(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
