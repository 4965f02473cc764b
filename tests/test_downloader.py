"""Test track downloads and download status tracking"""

import threading
import pytest

from conftest import make_playlist, make_track
from demotape.storage.exceptions import AuthRejected, RemoteNotFound, TransferFailed, TransferInterrupted
from demotape.sync.downloader import DownloadManager, SessionState, compute_progress


@pytest.fixture
def track():
    return make_track("abc", "3")


@pytest.fixture
def manager(fake_client, store, filesystem, track):
    store.add(make_playlist("p1.mix", [track]), persist=False)
    manager = DownloadManager(fake_client, store, filesystem, max_workers=2)
    yield manager
    manager.shutdown()


@pytest.fixture
def status_log(store, track):
    """Every status the store reports for the track, in order"""
    log = []

    def listener(event, path):
        if event == 'download_progress':
            log.append(store.get_track_status(track))

    store.subscribe(listener)
    return log


class TestComputeProgress:
    def test_floor_and_clamp(self):
        assert compute_progress(0, 100) == 0
        assert compute_progress(1, 3) == 33
        assert compute_progress(999, 1000) == 99
        assert compute_progress(1000, 1000) == 99
        assert compute_progress(5000, 1000) == 99

    def test_unknown_total(self):
        assert compute_progress(100, None) == 0
        assert compute_progress(100, 0) == 0


class TestDownloadManager:
    """Test session lifecycle"""

    def test_successful_download(self, manager, fake_client, store, track, temp_dir, status_log):
        fake_client.plan(track.path, chunks=(25, 50, 100), total=100)
        session = manager.download(track, "/mixes/p1.mix")
        assert session.wait(5) is SessionState.COMPLETED

        assert status_log == [0, 25, 50, 99, 100]
        assert store.get_track_status(track) == 100
        assert (temp_dir / "abc_3.mp3").exists()
        assert manager.get_session(track.id) is None

    def test_status_never_decreases(self, manager, fake_client, track, status_log):
        fake_client.plan(track.path, chunks=(60, 30, 80), total=100)
        manager.download(track).wait(5)
        assert status_log == [0, 60, 80, 100]

    def test_interrupted_keeps_progress(self, manager, fake_client, store, track, temp_dir):
        error = TransferInterrupted("Download interrupted", bytes_written=40)
        fake_client.plan(track.path, chunks=(40,), total=100, error=error)

        session = manager.download(track)
        assert session.wait(5) is SessionState.INTERRUPTED

        assert store.get_track_status(track) == 40
        assert store.last_error == "Download interrupted"
        assert not (temp_dir / "abc_3.mp3").exists()

    def test_interrupted_download_is_not_resumed_automatically(self, manager, fake_client, track):
        fake_client.plan(track.path, error=TransferInterrupted("Download interrupted"))
        manager.download(track).wait(5)
        assert len(fake_client.transfers) == 1
        assert fake_client.transfers[0].resume_calls == 1

    @pytest.mark.parametrize("error", [
        AuthRejected("Dropbox rejected the access token"),
        RemoteNotFound("File not found"),
        TransferFailed("Dropbox request failed"),
    ])
    def test_unrecoverable_failure_resets_status(self, manager, fake_client, store, track, error):
        fake_client.plan(track.path, chunks=(30,), error=error)
        session = manager.download(track)
        assert session.wait(5) is SessionState.FAILED
        assert store.get_track_status(track) is None
        assert store.last_error == error.message

    def test_supersession_drops_stale_progress(self, manager, fake_client, store, track, status_log):
        gate = threading.Event()
        fake_client.plan(track.path, chunks=(90,), total=100, gate=gate)
        fake_client.plan(track.path, chunks=(10,), total=100)

        first = manager.download(track)
        assert fake_client.transfers[0].started.wait(5)
        second = manager.download(track)
        assert first.transfer.cancelled

        gate.set()
        assert second.wait(5) is SessionState.COMPLETED
        assert first.state is SessionState.CANCELLED

        assert 90 not in status_log
        assert status_log[-1] == 100
        assert second.generation == first.generation + 1

    def test_cancel_keeps_partial_state(self, manager, fake_client, store, track, status_log):
        gate = threading.Event()
        fake_client.plan(track.path, chunks=(70,), gate=gate)
        session = manager.download(track)
        assert fake_client.transfers[0].started.wait(5)

        assert manager.cancel(track.id)
        gate.set()
        session.wait(5)

        assert session.state is SessionState.CANCELLED
        assert 70 not in status_log
        assert not manager.cancel(track.id)

    def test_track_without_path(self, manager):
        track = make_track("xyz", "1")
        track.path = None
        with pytest.raises(RemoteNotFound):
            manager.download(track)

    def test_download_tracks_skips_complete(self, manager, fake_client):
        done = make_track("a", "1", "a.mp3", status=100)
        missing = make_track("b", "1", "b.mp3")
        sessions = manager.download_tracks([done, missing])
        assert [s.track.id for s in sessions] == ["b"]
        sessions[0].wait(5)


class TestIsDownloaded:
    """Test the local existence check"""

    def test_existing_file(self, manager, track, temp_dir):
        (temp_dir / "abc_3.mp3").write_bytes(b"x")
        result = manager.is_downloaded(track)
        assert result.download_status == 100
        assert result is not track
        assert track.download_status is None

    def test_missing_file(self, manager, track):
        assert manager.is_downloaded(track.with_status(55)).download_status is None

    def test_partial_file_is_not_downloaded(self, manager, track, temp_dir):
        (temp_dir / "abc_3.mp3.part").write_bytes(b"x")
        assert manager.is_downloaded(track).download_status is None

    def test_other_revision_is_not_downloaded(self, manager, temp_dir):
        (temp_dir / "abc_2.mp3").write_bytes(b"x")
        assert manager.is_downloaded(make_track("abc", "3")).download_status is None
