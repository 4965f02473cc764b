"""Test configuration and fixtures"""

import threading
import pytest
import tempfile
from pathlib import Path
from unittest.mock import Mock

from demotape.player.controller import AudioEngine, SoundHandle
from demotape.storage.local import LocalFileSystem
from demotape.storage.models import Playlist, PlaylistData, PlaylistMeta, Track
from demotape.sync.store import PlaylistStore


class FakeTransfer:
    """
    Scripted stand-in for ResumableDownload

    Reports the given progress values (even after cancellation, like a late
    network callback would), then raises ``error`` or writes the file.
    """

    def __init__(self, local_path, on_progress, chunks=(50,), total=100, error=None, gate=None, content=b'audio'):
        self.local_path = Path(local_path)
        self.on_progress = on_progress
        self.chunks = chunks
        self.total = total
        self.error = error
        self.gate = gate
        self.content = content
        self.started = threading.Event()
        self._cancelled = threading.Event()
        self.resume_calls = 0

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()

    def resume(self):
        self.resume_calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        for written in self.chunks:
            self.on_progress(written, self.total)
        if self.error is not None:
            raise self.error
        if self.cancelled:
            return None
        self.local_path.write_bytes(self.content)
        return self.local_path


class FakeDropboxClient:
    """In-memory Dropbox with scripted transfers"""

    def __init__(self):
        self.entries = {}
        self.metadata = {}
        self.contents = {}
        self.accounts = {}
        self.uploads = []
        self.transfer_plans = {}
        self.transfers = []
        self.list_calls = []

    def plan(self, remote_path, **kwargs):
        """Queue FakeTransfer options for the next download of a path"""
        self.transfer_plans.setdefault(remote_path, []).append(kwargs)

    def list_entries(self, path, recursive=False):
        self.list_calls.append(path)
        return list(self.entries.get(path, []))

    def get_metadata(self, path):
        return dict(self.metadata[path.lower()])

    def download_content(self, path):
        return self.contents[path.lower()]

    def download_resumable(self, remote_path, local_path, on_progress=None):
        plans = self.transfer_plans.get(remote_path) or []
        options = plans.pop(0) if plans else {}
        transfer = FakeTransfer(local_path, on_progress, **options)
        self.transfers.append(transfer)
        return transfer

    def upload_file(self, contents, path, overwrite=True, mute=True):
        self.uploads.append((path, contents))
        rev = f"rev{len(self.uploads)}"
        name = path.rsplit('/', 1)[-1]
        meta = {
            'name': name,
            'path_lower': path.lower(),
            'path_display': path,
            'rev': rev,
            'server_modified': '2024-01-01T00:00:00Z',
            'id': f"id:{name}",
        }
        self.metadata[path.lower()] = meta
        self.contents[path.lower()] = contents
        return meta

    def get_accounts(self, account_ids):
        return [self.accounts[a] for a in account_ids if a in self.accounts]


class FakeSound(SoundHandle):
    def __init__(self, uri, on_status):
        self.uri = uri
        self.on_status = on_status
        self.calls = []
        self.unload_error = None

    def play(self):
        self.calls.append('play')

    def pause(self):
        self.calls.append('pause')

    def set_position(self, millis):
        self.calls.append(('set_position', millis))

    def play_from_position(self, millis):
        self.calls.append(('play_from_position', millis))

    def set_on_status_update(self, callback):
        self.on_status = callback

    def unload(self):
        self.calls.append('unload')
        if self.unload_error:
            raise self.unload_error


class FakeAudioEngine(AudioEngine):
    def __init__(self):
        self.sounds = []
        self.load_error = None

    def load(self, uri, initial_status, on_status):
        if self.load_error:
            raise self.load_error
        sound = FakeSound(uri, on_status)
        sound.initial_status = initial_status
        self.sounds.append(sound)
        return sound


def make_track(track_id='abc', rev='3', name='My Song.mp3', status=None):
    return Track(id=track_id, rev=rev, name=name, path=f"/music/{name.lower()}", download_status=status)


def make_playlist(name='p1.mix', tracks=None, rev='1', title=None, folder='/mixes'):
    path = f"{folder}/{name}"
    return Playlist(
        meta=PlaylistMeta(
            name=name,
            path_lower=path.lower(),
            path_display=path,
            rev=rev,
            server_modified='2024-01-01T00:00:00Z',
            id=f"id:{name}",
        ),
        data=PlaylistData(title=title or name.rsplit('.', 1)[0], tracks=list(tracks or [])),
    )


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def filesystem(temp_dir):
    """Local file system rooted at a temporary document root"""
    return LocalFileSystem(temp_dir)


@pytest.fixture
def store(filesystem):
    return PlaylistStore(filesystem)


@pytest.fixture
def fake_client():
    return FakeDropboxClient()


@pytest.fixture
def audio_engine():
    return FakeAudioEngine()


@pytest.fixture
def mock_settings(temp_dir):
    """Mock settings for testing"""
    settings = Mock()
    settings.storage.document_root = str(temp_dir)
    settings.download.concurrency = 2
    settings.sync.root_folder = '/mixes'
    settings.sync.cache_timeout_minutes = 5
    settings.sync.purge_after_delete = True
    settings.sync.recursive_listing = True
    return settings
