"""Test local document storage"""

import pytest

from demotape.storage.exceptions import StorageUnavailable
from demotape.storage.local import LocalFileSystem, LocalStoreScanner
from demotape.storage.models import FileKind, LocalFileEntry


class TestLocalFileSystem:
    """Test filesystem primitives"""

    def test_read_directory_sorted_files_only(self, filesystem, temp_dir):
        (temp_dir / "b.mp3").write_bytes(b"1")
        (temp_dir / "a.mix").write_text("{}")
        (temp_dir / "sub").mkdir()
        assert filesystem.read_directory() == ["a.mix", "b.mp3"]

    def test_missing_root_is_unavailable(self, temp_dir):
        fs = LocalFileSystem(temp_dir / "missing")
        with pytest.raises(StorageUnavailable) as exc_info:
            fs.read_directory()
        assert "missing" in exc_info.value.details['path']

    def test_stat_file(self, filesystem, temp_dir):
        (temp_dir / "abc_3.mp3").write_bytes(b"12345")
        info = filesystem.stat_file("abc_3.mp3")
        assert info.exists and info.size == 5
        assert not filesystem.stat_file("nope.mp3").exists

    def test_delete_missing_file_is_ignored(self, filesystem):
        filesystem.delete_file("never-there.mp3")

    def test_write_and_read_text(self, filesystem, temp_dir):
        filesystem.write_text("p1.mix", '{"title": "Ünïcode"}')
        assert filesystem.read_text("p1.mix") == '{"title": "Ünïcode"}'
        assert not list(temp_dir.glob(".*.tmp"))
        assert filesystem.read_text("other.mix") is None

    def test_ensure_root(self, temp_dir):
        fs = LocalFileSystem(temp_dir / "nested" / "docs")
        assert fs.ensure_root().is_dir()


class TestLocalStoreScanner:
    """Test directory classification"""

    def test_scan_classifies(self, filesystem, temp_dir):
        for name in ["p1.mix", "abc_3.mp3", "stray.txt", "abc_4.mp3.part"]:
            (temp_dir / name).write_bytes(b"")
        kinds = {entry.name: entry.kind for entry in LocalStoreScanner(filesystem).scan()}
        assert kinds == {
            "p1.mix": FileKind.PLAYLIST,
            "abc_3.mp3": FileKind.AUDIO,
            "stray.txt": FileKind.UNRELATED,
            "abc_4.mp3.part": FileKind.UNRELATED,
        }

    def test_scan_rereads_directory(self, filesystem, temp_dir):
        scanner = LocalStoreScanner(filesystem)
        assert list(scanner.scan()) == []
        (temp_dir / "new.wav").write_bytes(b"")
        assert [e.name for e in scanner.scan()] == ["new.wav"]

    def test_partial_download_target(self):
        assert LocalFileEntry("abc_3.mp3.part", FileKind.UNRELATED).partial_of == "abc_3.mp3"
        assert LocalFileEntry("notes.txt.part", FileKind.UNRELATED).partial_of is None
        assert LocalFileEntry("abc_3.mp3", FileKind.AUDIO).partial_of is None

    def test_scan_unreadable_root(self, temp_dir):
        scanner = LocalStoreScanner(LocalFileSystem(temp_dir / "missing"))
        with pytest.raises(StorageUnavailable):
            scanner.scan()
