from __future__ import annotations

import json
from pathlib import Path

from carnavul.utils.tracking import (
    TRACKING_DIR_NAME,
    TrackingCollection,
    TrackingStore,
    init_tracking,
    load_archive_ids,
)


def test_init_tracking_creates_files(tmp_path: Path) -> None:
    files = init_tracking(tmp_path)

    assert files.root == tmp_path / TRACKING_DIR_NAME
    assert files.downloaded_path.exists()
    for path in files.json_paths():
        assert json.loads(path.read_text(encoding="utf-8")) == []


def test_init_tracking_repairs_corrupt_collections(tmp_path: Path) -> None:
    root = tmp_path / TRACKING_DIR_NAME
    root.mkdir()
    (root / "ignored.json").write_text("{broken", encoding="utf-8")
    (root / "failed.json").write_text('{"id": "x"}', encoding="utf-8")
    (root / "check_later.json").write_text('[{"id": "keep"}]', encoding="utf-8")

    files = init_tracking(tmp_path)

    assert json.loads(files.ignored_path.read_text(encoding="utf-8")) == []
    assert json.loads(files.failed_path.read_text(encoding="utf-8")) == []
    assert json.loads(files.check_later_path.read_text(encoding="utf-8")) == [{"id": "keep"}]


def test_collection_append_read_and_remove(tmp_path: Path) -> None:
    collection = TrackingCollection(tmp_path / "failed.json")

    assert collection.read() == []
    assert collection.append({"id": "a", "title": "Agarrate Catalina 2019"})
    assert collection.append({"id": "b", "title": "Cayó La Cabra 2020"})
    assert collection.append({"id": "a", "title": "Agarrate Catalina 2019 (retry)"})

    assert [entry["id"] for entry in collection.read()] == ["a", "b", "a"]
    assert collection.id_set() == {"a", "b"}

    assert collection.remove_by_id("a") == 2
    assert collection.read() == [{"id": "b", "title": "Cayó La Cabra 2020"}]
    assert collection.remove_by_id("missing") == 0
    assert collection.remove_by_id(None) == 0


def test_collection_keeps_unicode_readable(tmp_path: Path) -> None:
    collection = TrackingCollection(tmp_path / "ignored.json")
    collection.append({"id": "m", "title": "La Gran Muñeca"})
    assert "Muñeca" in collection.path.read_text(encoding="utf-8")


def test_collection_invalid_content_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "check_later.json"
    collection = TrackingCollection(path)

    path.write_text("not json", encoding="utf-8")
    assert collection.read() == []
    path.write_text('{"id": "x"}', encoding="utf-8")
    assert collection.read() == []
    path.write_text("   ", encoding="utf-8")
    assert collection.read() == []


def test_collection_refuses_non_list_writes(tmp_path: Path) -> None:
    collection = TrackingCollection(tmp_path / "failed.json")
    collection.write([{"id": "a"}])

    assert collection.write({"id": "b"}) is False  # type: ignore[arg-type]
    assert collection.read() == [{"id": "a"}]


def test_collection_write_leaves_no_temp_file(tmp_path: Path) -> None:
    collection = TrackingCollection(tmp_path / "failed.json")
    collection.write([{"id": "a"}])
    assert sorted(p.name for p in tmp_path.iterdir()) == ["failed.json"]


def test_load_archive_ids_takes_last_token(tmp_path: Path) -> None:
    archive = tmp_path / "downloaded.txt"
    archive.write_text("youtube abc123\n\n   \nyoutube  def456  \nlonely\n", encoding="utf-8")
    assert load_archive_ids(archive) == {"abc123", "def456", "lonely"}


def test_load_archive_ids_missing_file(tmp_path: Path) -> None:
    assert load_archive_ids(tmp_path / "downloaded.txt") == set()


def test_store_open_wires_collections(tmp_path: Path) -> None:
    store = TrackingStore.open(tmp_path)
    store.files.downloaded_path.write_text("youtube vid1\n", encoding="utf-8")

    store.check_later.append({"id": "vid2"})
    assert store.archive_ids() == {"vid1"}
    assert store.check_later.id_set() == {"vid2"}
    assert store.ignored.read() == []
    assert store.failed.path == tmp_path / TRACKING_DIR_NAME / "failed.json"


def test_remove_by_id_matches_non_string_ids(tmp_path: Path) -> None:
    collection = TrackingCollection(tmp_path / "failed.json")
    collection.write([{"id": 12345, "title": "numeric"}, {"id": None, "title": "no id"}, {"id": "abc"}])

    assert "12345" in collection.id_set()
    assert collection.remove_by_id("12345") == 1
    assert collection.remove_by_id("None") == 0
    assert collection.read() == [{"id": None, "title": "no id"}, {"id": "abc"}]
