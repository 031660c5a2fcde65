"""
Tests for the file-backed persistent store
"""

import pytest
from unittest.mock import patch

from soundtouch_cloud.errors import PersistenceFailed
from soundtouch_cloud.models import RecordKind
from soundtouch_cloud.storage import PersistentStore


@pytest.fixture
def store(tmp_path):
    return PersistentStore(str(tmp_path))


class TestPersistentStore:
    """Whole-record save / load"""

    def test_save_then_load(self, store, tmp_path):
        store.save(RecordKind.PRESETS, "acct", "dev1", "<presets />")

        assert store.load(RecordKind.PRESETS, "acct", "dev1") == "<presets />"
        assert (tmp_path / "accounts" / "acct" / "devices" / "dev1" / "Presets.xml").exists()

    def test_save_replaces_whole_record(self, store):
        store.save(RecordKind.RECENTS, "acct", "dev1", "<recents><recent /></recents>")
        store.save(RecordKind.RECENTS, "acct", "dev1", "<recents />")

        assert store.load(RecordKind.RECENTS, "acct", "dev1") == "<recents />"

    def test_no_temp_file_left_behind(self, store, tmp_path):
        store.save(RecordKind.SOURCES, "acct", "dev1", "<sources />")

        files = [p.name for p in (tmp_path / "accounts" / "acct" / "devices" / "dev1").iterdir()]
        assert files == ["Sources.xml"]

    def test_load_missing_returns_none(self, store):
        assert store.load(RecordKind.DEVICE_INFO, "acct", "ghost") is None

    def test_list_devices_sorted(self, store):
        store.save(RecordKind.DEVICE_INFO, "acct", "zeta", "<info />")
        store.save(RecordKind.PRESETS, "acct", "alpha", "<presets />")

        assert store.list("acct") == ["alpha", "zeta"]
        assert store.list("other") == []

    def test_exists_checks_device_info(self, store):
        store.save(RecordKind.PRESETS, "acct", "dev1", "<presets />")
        assert store.exists("acct", "dev1") is False

        store.save(RecordKind.DEVICE_INFO, "acct", "dev1", "<info />")
        assert store.exists("acct", "dev1") is True

    @pytest.mark.parametrize("device_id", ["..", "a/b", "", "dev 1"])
    def test_unsafe_ids_rejected(self, store, device_id):
        with pytest.raises(PersistenceFailed):
            store.save(RecordKind.PRESETS, "acct", device_id, "<presets />")
        assert store.load(RecordKind.PRESETS, "acct", device_id) is None

    def test_write_failure_raises_persistence_failed(self, store):
        with patch("soundtouch_cloud.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceFailed):
                store.save(RecordKind.PRESETS, "acct", "dev1", "<presets />")

        assert store.load(RecordKind.PRESETS, "acct", "dev1") is None
