"""
Playlist state store

PlaylistStore holds the application's view of every known playlist, the
selected playlist, and the last user-visible error. All mutations go through
its methods under a single lock, so background download threads and the
foreground flow never observe a half-applied change. Readers get copies.

Each playlist is also persisted as a JSON snapshot in the document root under
its canonical playlist file name, so the track list survives restarts.
"""

import copy
import json
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..storage.exceptions import StorageUnavailable
from ..storage.local import LocalFileSystem, LocalStoreScanner
from ..storage.models import FileKind, Playlist, PlaylistView, Track, TrackView, clamp_status
from ..storage.naming import get_playlist_file_name
from ..utils.logger import get_logger


Listener = Callable[[str, Optional[str]], None]


class PlaylistStore:
    """Thread-safe container of playlist state"""

    def __init__(self, filesystem: LocalFileSystem):
        self.filesystem = filesystem
        self.logger = get_logger(__name__)
        self._lock = threading.RLock()
        self._playlists: Dict[str, Playlist] = {}
        self._selected: Optional[str] = None
        self._pending = False
        self._last_error: Optional[str] = None
        self._last_loaded: Optional[datetime] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener

        Listeners are called with (event, playlist_path) after each change.

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, event: str, path: Optional[str] = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, path)
            except Exception as e:
                self.logger.error(f"Store listener failed on {event}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: Optional[str]) -> Optional[Playlist]:
        with self._lock:
            playlist = self._playlists.get(path) if path else None
            return copy.deepcopy(playlist) if playlist else None

    def all(self) -> List[Playlist]:
        with self._lock:
            return copy.deepcopy(list(self._playlists.values()))

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._playlists)

    @property
    def selected_path(self) -> Optional[str]:
        with self._lock:
            return self._selected

    def selected(self) -> Optional[Playlist]:
        return self.get(self.selected_path)

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_loaded(self) -> Optional[datetime]:
        return self._last_loaded

    def playlist_views(self) -> List[PlaylistView]:
        return [PlaylistView.from_playlist(p) for p in self.all()]

    def track_views(self, path: Optional[str] = None) -> List[TrackView]:
        playlist = self.get(path or self.selected_path)
        if not playlist:
            return []
        return [TrackView.from_track(track, index) for index, track in enumerate(playlist.tracks)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_pending(self) -> None:
        with self._lock:
            self._pending = True
            self._last_error = None
        self._notify('pending')

    def set_error(self, message: str) -> None:
        """Record a user-visible error message"""
        with self._lock:
            self._pending = False
            self._last_error = message
        self._notify('failed')

    def mark_loaded(self, when: Optional[datetime] = None) -> None:
        with self._lock:
            self._pending = False
            self._last_loaded = when or datetime.now()
        self._notify('success')

    def add(self, playlist: Playlist, persist: bool = True) -> None:
        """Add or replace a playlist, keeping its position if it was known"""
        with self._lock:
            self._playlists[playlist.path] = copy.deepcopy(playlist)
            self._pending = False
        if persist:
            self.persist(playlist.path)
        self._notify('add_success', playlist.path)

    def save(self, playlist: Playlist) -> None:
        """Replace a playlist after it was uploaded"""
        self.add(playlist)
        self._notify('save_success', playlist.path)

    def delete(self, path: str) -> Optional[Playlist]:
        """
        Forget a playlist and remove its local snapshot

        Returns:
            The removed playlist, or None if it was unknown
        """
        with self._lock:
            playlist = self._playlists.pop(path, None)
            if self._selected == path:
                self._selected = None
        if playlist is None:
            return None

        try:
            self.filesystem.delete_file(get_playlist_file_name(playlist.meta.name))
        except OSError as e:
            self.logger.error(f"Failed to delete playlist file for {path}: {e}")
        self._notify('delete', path)
        return playlist

    def select(self, path: Optional[str]) -> None:
        with self._lock:
            if path is not None and path not in self._playlists:
                raise KeyError(path)
            self._selected = path
        self._notify('select', path)

    def update_tracks(self, path: str, tracks: List[Track], persist: bool = True) -> None:
        """Replace the track list of a playlist (order preserved as given)"""
        with self._lock:
            playlist = self._playlists.get(path)
            if playlist is None:
                raise KeyError(path)
            playlist.data.tracks = copy.deepcopy(list(tracks))
        if persist:
            self.persist(path)
        self._notify('update_tracks', path)

    def get_track_status(self, track: Track) -> Optional[int]:
        with self._lock:
            for playlist in self._playlists.values():
                for existing in playlist.data.tracks:
                    if existing.id == track.id and existing.rev == track.rev:
                        return existing.download_status
        return None

    def update_track_status(self, track: Track, status: Optional[int]) -> int:
        """
        Set the download status of a track wherever it appears

        A track file is shared by every playlist referencing the same id and
        revision, so all of them are updated.

        Returns:
            Number of playlist entries updated
        """
        status = clamp_status(status)
        updated = []
        with self._lock:
            for playlist in self._playlists.values():
                for existing in playlist.data.tracks:
                    if existing.id == track.id and existing.rev == track.rev:
                        existing.download_status = status
                        updated.append(playlist.path)
        for path in dict.fromkeys(updated):
            self._notify('download_progress', path)
        return len(updated)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self, path: str) -> None:
        """Write the snapshot of one playlist to the document root"""
        playlist = self.get(path)
        if playlist is None:
            return
        try:
            self.filesystem.write_text(
                get_playlist_file_name(playlist.meta.name),
                json.dumps(playlist.to_dict(), indent=2, ensure_ascii=False)
            )
        except StorageUnavailable as e:
            self.logger.error(f"Failed to persist playlist {path}: {e}", exc_info=True)

    def restore(self) -> int:
        """
        Load every playlist snapshot found in the document root

        Unreadable snapshots are logged and skipped.

        Returns:
            Number of playlists restored
        """
        restored = 0
        scanner = LocalStoreScanner(self.filesystem)
        for entry in scanner.scan():
            if entry.kind is not FileKind.PLAYLIST:
                continue
            try:
                playlist = Playlist.from_dict(json.loads(self.filesystem.read_text(entry.name) or '{}'))
            except (ValueError, KeyError, TypeError) as e:
                self.logger.warning(f"Skipping unreadable playlist snapshot {entry.name}: {e}")
                continue
            if not playlist.path:
                self.logger.warning(f"Skipping playlist snapshot without path: {entry.name}")
                continue
            with self._lock:
                self._playlists[playlist.path] = playlist
            restored += 1

        self.logger.debug(f"Restored {restored} playlists from {self.filesystem.document_root}")
        if restored:
            self._notify('success')
        return restored
