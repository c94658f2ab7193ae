"""Live checks against YouTube; set CARNAVUL_LIVE_CHANNEL to run them."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from carnavul.pipelines.selection import collect_candidates, select_winners
from carnavul.utils.catalog import load_catalog
from carnavul.utils.env import load_env_file
from carnavul.utils.video_sources import YtDlpVideoSource

PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_env_file(PROJECT_ROOT / ".env", override=False)

CHANNEL = os.environ.get("CARNAVUL_LIVE_CHANNEL")
CATALOG_PATH = Path(os.environ.get("CARNAVUL_CONFIG", str(PROJECT_ROOT / "conjuntos.example.json")))

pytestmark = pytest.mark.skipif(not CHANNEL, reason="CARNAVUL_LIVE_CHANNEL not set")


def test_live_channel_listing_selects_winners() -> None:
    source = YtDlpVideoSource()
    stubs = source.list_entries(CHANNEL)  # type: ignore[arg-type]
    assert stubs, "channel listing returned no entries"

    collection = collect_candidates(stubs, load_catalog(CATALOG_PATH))
    selection = select_winners(collection.groups)
    keys = [winner.key for winner in selection.winners]
    assert len(keys) == len(set(keys))


def test_live_metadata_has_duration() -> None:
    source = YtDlpVideoSource()
    stub = source.list_entries(CHANNEL)[0]  # type: ignore[arg-type]
    metadata = source.fetch_metadata(stub.url)
    assert metadata.id == stub.id
    assert metadata.title
