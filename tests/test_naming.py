"""Test file classification and canonical file names"""

import pytest
from pathlib import Path

from demotape.storage.models import FileKind, Track, get_extension, is_audio_file, is_playlist
from demotape.storage.naming import (
    create_valid_file_name,
    get_file_name,
    get_file_path,
    get_playlist_file_name,
)


class TestClassification:
    """Test extension based classification"""

    def test_get_extension(self):
        assert get_extension("My Song.mp3") == "mp3"
        assert get_extension("archive.tar.gz") == "gz"
        assert get_extension("README") == "README"
        assert get_extension(None) == ""

    @pytest.mark.parametrize("name", ["a.mp3", "a.m4a", "a.ovw", "a.wav", "LOUD.MP3"])
    def test_audio_extensions(self, name):
        assert is_audio_file(name)
        assert FileKind.from_name(name) is FileKind.AUDIO

    def test_playlist_extension(self):
        assert is_playlist("Road Trip.mix")
        assert is_playlist("SHOUT.MIX")
        assert FileKind.from_name("p1.mix") is FileKind.PLAYLIST

    @pytest.mark.parametrize("name", ["stray.txt", "cover.jpg", "abc_3.mp3.part", ".hidden"])
    def test_unrelated(self, name):
        assert FileKind.from_name(name) is FileKind.UNRELATED


class TestNaming:
    """Test canonical name derivation"""

    def test_track_file_name(self):
        """Only id, rev and extension feed the canonical name"""
        track = Track(id="abc", rev="3", name="My Song.mp3")
        assert get_file_name(track) == "abc_3.mp3"

    def test_track_name_does_not_matter(self):
        a = Track(id="abc", rev="3", name="My Song - Live.mp3")
        b = Track(id="abc", rev="3", name="other.mp3")
        assert get_file_name(a) == get_file_name(b)

    def test_new_revision_changes_name(self):
        assert get_file_name(Track(id="abc", rev="3", name="x.mp3")) != get_file_name(Track(id="abc", rev="4", name="x.mp3"))

    def test_none_track(self):
        assert get_file_name(None) is None
        assert get_file_path(None, "/tmp") is None

    def test_separators_replaced(self):
        assert create_valid_file_name("My Mix - Vol 2") == "My_Mix___Vol_2"
        assert create_valid_file_name("a—b") == "a_b"
        assert create_valid_file_name("  padded\t") == "__padded"

    def test_idempotent(self):
        for name in ["My Mix - Vol 2.mix", "id:abc_3.mp3", "plain"]:
            once = create_valid_file_name(name)
            assert create_valid_file_name(once) == once

    def test_playlist_file_name(self):
        assert get_playlist_file_name("Road Trip.mix") == "Road_Trip.mix"
        assert get_playlist_file_name("p1.mix") == "p1.mix"

    def test_file_path(self):
        track = Track(id="abc", rev="3", name="My Song.mp3")
        assert get_file_path(track, "/docs") == Path("/docs") / "abc_3.mp3"
