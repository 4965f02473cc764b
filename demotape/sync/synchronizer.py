"""
Playlist synchronization and playback flow

PlaylistSynchronizer coordinates the storage and download layers for the
high-level flows a user triggers:

- Discovering playlists in Dropbox and caching them locally
- Selecting a playlist, refreshing it when its revision changed upstream
- Creating, saving and deleting playlists (deletion purges orphaned files)
- Requesting track downloads (never started automatically)
- Playing, pausing, seeking and moving between tracks

Track navigation clamps at both ends of the playlist: "previous" on the first
track and "next" on the last track keep the current track. When the last
track finishes naturally playback stops.

Every failure is logged with its details first, then recorded in the store as
the user-visible error, then re-raised to the caller.
"""

import json
import threading
from typing import Any, Dict, List, Optional

from ..config.settings import Settings, get_settings
from ..storage.dropbox import DropboxClient
from ..storage.exceptions import AuthRejected, DemotapeError, PlaybackError, StorageUnavailable
from ..storage.local import LocalFileSystem
from ..storage.models import (
    Account,
    AudioState,
    DOWNLOAD_COMPLETE,
    Playlist,
    PlaylistData,
    PlaylistMeta,
    RemoteEntry,
    Track,
)
from ..storage.remote import (
    get_modified_users_from_entries,
    is_folder_or_audio_file,
    normalize,
    transform_account,
    transform_file,
)
from ..utils.helpers import check_timeout
from ..utils.logger import get_logger
from .cleaner import Reconciler
from .downloader import DownloadManager, DownloadSession
from .store import PlaylistStore


def decode_playlist_contents(raw: bytes) -> Dict[str, Any]:
    """
    Parse the contents of a .mix file

    Playlists are written as ISO-8859-1; older files may be UTF-8.
    """
    try:
        text = raw.decode('utf-8')
    except UnicodeDecodeError:
        text = raw.decode('iso-8859-1')
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Playlist file does not contain an object")
    return data


def encode_playlist_contents(data: PlaylistData) -> bytes:
    """Serialize playlist contents for upload (ASCII JSON, valid ISO-8859-1)"""
    return json.dumps(data.to_dict(include_status=False)).encode('iso-8859-1')


class PlaylistSynchronizer:
    """Coordinates remote state, local cache, downloads and playback"""

    def __init__(
        self,
        client: DropboxClient,
        filesystem: LocalFileSystem,
        store: Optional[PlaylistStore] = None,
        downloader: Optional[DownloadManager] = None,
        reconciler: Optional[Reconciler] = None,
        player=None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.filesystem = filesystem
        self.store = store or PlaylistStore(filesystem)
        self.downloader = downloader or DownloadManager(
            client, self.store, filesystem, max_workers=self.settings.download.concurrency
        )
        self.reconciler = reconciler or Reconciler(filesystem)
        self.player = player
        self.logger = get_logger(__name__)

        self.audio = AudioState()
        self._audio_lock = threading.RLock()

        if self.player is not None:
            self.player.on_finish = self.track_complete
            self.player.on_error = self.handle_playback_error
        self.store.subscribe(self._on_store_event)

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------

    def _handle_error(self, error: DemotapeError, action: str) -> None:
        """Log full detail first, then record the user-visible message"""
        self.logger.error(f"{action} failed: {error.message} - {error.details}")
        self.store.set_error(error.message)

    # ------------------------------------------------------------------
    # Playlists
    # ------------------------------------------------------------------

    def restore_local_playlists(self) -> List[Playlist]:
        """Load cached playlist snapshots and refresh their download statuses"""
        self.filesystem.ensure_root()
        self.store.restore()
        for playlist in self.store.all():
            tracks = [self._local_status(track) for track in playlist.tracks]
            self.store.update_tracks(playlist.path, tracks, persist=False)
        return self.store.all()

    def load_playlists(self, folder: Optional[str] = None, force: bool = False) -> List[Playlist]:
        """
        Discover playlist files in a Dropbox folder and cache them

        A listing younger than ``sync.cache_timeout_minutes`` is not fetched
        again unless ``force`` is set. Playlists whose revision did not change
        are left as they are. A playlist file that cannot be read is logged and
        skipped so the rest of the folder is still discovered; the skipped
        files are reported through the store's error message.

        Args:
            folder: Dropbox folder, defaults to ``sync.root_folder``
            force: Ignore the listing cache

        Returns:
            All known playlists
        """
        if not force and check_timeout(self.store.last_loaded, self.settings.sync.cache_timeout_minutes):
            self.logger.debug("Playlist listing is fresh, skipping remote load")
            return self.store.all()

        folder = self.settings.sync.root_folder if folder is None else folder
        self.store.set_pending()
        skipped = []
        try:
            entries = normalize(self.client.list_entries(folder, recursive=self.settings.sync.recursive_listing))
            for entry in entries:
                if not (entry.is_file and entry.is_playlist):
                    continue
                cached = self.store.get(entry.path_lower)
                if cached and not PlaylistMeta.from_dict(_entry_meta(entry)).differs_from(cached.meta):
                    continue
                try:
                    self.add_playlist(entry)
                except (AuthRejected, StorageUnavailable):
                    raise
                except DemotapeError as e:
                    self.logger.error(f"Skipping playlist {entry.path}: {e.message} - {e.details}")
                    skipped.append(entry.path)
        except DemotapeError as e:
            self._handle_error(e, "Loading playlists")
            raise

        self.store.mark_loaded()
        if skipped:
            self.store.set_error(f"Could not load {len(skipped)} playlists: {', '.join(skipped)}")
        self.logger.info(f"Loaded playlists from '{folder or '/'}': {len(self.store.paths())} known")
        return self.store.all()

    def add_playlist(self, entry: RemoteEntry) -> Playlist:
        """Read a playlist file from Dropbox and add it to the store"""
        meta = PlaylistMeta.from_dict(_entry_meta(entry))
        playlist = self._fetch_playlist(meta)
        self.store.add(playlist)
        self.logger.info(f"Added playlist '{playlist.title}' ({len(playlist.tracks)} tracks)")
        return playlist

    def _fetch_playlist(self, meta: PlaylistMeta, previous: Optional[Playlist] = None) -> Playlist:
        try:
            data = PlaylistData.from_dict(decode_playlist_contents(self.client.download_content(meta.path_lower)))
        except (ValueError, KeyError, TypeError) as e:
            raise DemotapeError(
                f"Playlist file is not valid: {meta.path_display or meta.path_lower}",
                details={'path': meta.path_lower, 'original_error': str(e)}
            ) from e
        data.tracks = self._merge_tracks(previous.tracks if previous else [], data.tracks)
        return Playlist(meta=meta, data=data)

    def _local_status(self, track: Track) -> Track:
        if self.downloader.get_session(track.id) is not None:
            return track
        return self.downloader.is_downloaded(track)

    def _merge_tracks(self, old_tracks: List[Track], new_tracks: List[Track]) -> List[Track]:
        """
        Derive statuses for a fresh track list

        Tracks with a running download keep their progress; every other
        track gets its status from the local file check. Order is the order
        of the new list.
        """
        old = {(t.id, t.rev): t for t in old_tracks}
        merged = []
        for track in new_tracks:
            existing = old.get((track.id, track.rev))
            if existing is not None and self.downloader.get_session(track.id) is not None:
                merged.append(track.with_status(existing.download_status))
            else:
                merged.append(self.downloader.is_downloaded(track))
        return merged

    def select_playlist(self, path: str) -> Playlist:
        """
        Select a playlist, refreshing it if it changed in Dropbox

        Tracks are not downloaded automatically.

        Args:
            path: Dropbox path of the playlist file

        Returns:
            The selected playlist
        """
        cached = self.store.get(path) or self.store.get(path.lower())
        try:
            meta = PlaylistMeta.from_dict(self.client.get_metadata(path))
            if cached is None or meta.differs_from(cached.meta):
                self.logger.info(f"Playlist changed upstream, refreshing: {path}")
                playlist = self._fetch_playlist(meta, previous=cached)
                self.store.add(playlist)
                if cached is not None:
                    self._purge()
            else:
                tracks = [self._local_status(track) for track in cached.tracks]
                self.store.update_tracks(cached.path, tracks, persist=False)
        except DemotapeError as e:
            self._handle_error(e, f"Selecting playlist {path}")
            raise

        self.store.select(meta.path_lower)
        return self.store.selected()

    def create_playlist(self, title: str, folder: str, tracks: List[Track]) -> Playlist:
        """
        Create a playlist file in Dropbox from a list of tracks

        Args:
            title: Playlist title (also the file name)
            folder: Dropbox folder to store the file in
            tracks: Tracks in play order
        """
        path = f"{folder.rstrip('/')}/{title}.mix"
        return self._upload(path, PlaylistData(title=title, tracks=list(tracks)))

    def save_playlist(self, path: str, title: Optional[str] = None, tracks: Optional[List[Track]] = None) -> Playlist:
        """Upload changed title and/or track order of a known playlist"""
        playlist = self.store.get(path)
        if playlist is None:
            raise KeyError(path)
        data = PlaylistData(
            title=title if title is not None else playlist.title,
            tracks=list(tracks) if tracks is not None else playlist.tracks,
        )
        return self._upload(playlist.meta.path_display or path, data, previous=playlist)

    def _upload(self, path: str, data: PlaylistData, previous: Optional[Playlist] = None) -> Playlist:
        try:
            meta = PlaylistMeta.from_dict(self.client.upload_file(encode_playlist_contents(data), path))
        except DemotapeError as e:
            self._handle_error(e, f"Saving playlist {path}")
            raise

        data.tracks = self._merge_tracks(previous.tracks if previous else data.tracks, data.tracks)
        playlist = Playlist(meta=meta, data=data)
        self.store.save(playlist)
        self.logger.info(f"Saved playlist '{data.title}' to {meta.path_display}")
        return playlist

    def delete_playlist(self, path: str) -> List[str]:
        """
        Remove a playlist locally and purge files no other playlist uses

        Downloads of tracks that no remaining playlist references are
        cancelled. The playlist file in Dropbox is left alone.

        Returns:
            Names of purged local files
        """
        playlist = self.store.get(path)
        if playlist is None:
            return []

        with self._audio_lock:
            playing_here = self.store.selected_path == path and self.audio.track_id is not None
        if playing_here:
            self.stop()

        self.store.delete(path)

        still_used = {t.id for p in self.store.all() for t in p.tracks}
        for track in playlist.tracks:
            if track.id not in still_used:
                self.downloader.cancel(track.id)

        self.logger.info(f"Removed playlist '{playlist.title}'")
        if self.settings.sync.purge_after_delete:
            return self._purge()
        return []

    def clean(self) -> List[str]:
        """Purge local files not referenced by any playlist"""
        return self._purge()

    def _purge(self) -> List[str]:
        return self.reconciler.reconcile_and_purge(self.store.all())

    # ------------------------------------------------------------------
    # Remote browsing
    # ------------------------------------------------------------------

    def browse(self, path: str = '') -> List[RemoteEntry]:
        """Folders and audio files of a Dropbox folder, folders first"""
        try:
            raw_entries = self.client.list_entries(path)
        except DemotapeError as e:
            self._handle_error(e, f"Browsing {path or '/'}")
            raise
        entries = [transform_file(e) for e in raw_entries if is_folder_or_audio_file(e)]
        return sorted(entries, key=lambda e: (not e.is_folder, e.name.lower()))

    def get_modified_users(self, path: str = '') -> List[Account]:
        """Accounts that last modified entries of a shared folder"""
        try:
            raw_entries = self.client.list_entries(path)
            accounts = self.client.get_accounts(get_modified_users_from_entries(raw_entries))
        except DemotapeError as e:
            self._handle_error(e, f"Loading users of {path or '/'}")
            raise
        return [transform_account(a) for a in accounts]

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def request_download(self, track_id: Optional[str] = None) -> Optional[DownloadSession]:
        """
        Download a track of the selected playlist (the current track by default)

        Returns:
            The started session, or None if the track is unknown or complete
        """
        playlist = self.store.selected()
        track_id = track_id or self.audio.track_id
        track = playlist.get_track(track_id) if playlist else None
        if track is None or track.is_downloaded:
            return None
        try:
            return self.downloader.download(track, playlist.path)
        except DemotapeError as e:
            self._handle_error(e, f"Downloading {track.name}")
            raise

    def download_playlist(self, path: Optional[str] = None) -> List[DownloadSession]:
        """Download every missing track of a playlist"""
        playlist = self.store.get(path or self.store.selected_path)
        if playlist is None:
            return []
        return self.downloader.download_tracks(playlist.tracks, playlist.path)

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def current_track(self) -> Optional[Track]:
        playlist = self.store.selected()
        if playlist is None or self.audio.track_id is None:
            return None
        return playlist.get_track(self.audio.track_id)

    def play(self, track_id: str) -> Optional[Track]:
        """Start playing a track of the selected playlist"""
        playlist = self.store.selected()
        track = playlist.get_track(track_id) if playlist else None
        if track is None:
            return None
        with self._audio_lock:
            self.audio = AudioState(track_id=track.id, is_playing=True, is_paused=False)
        if self.player is not None:
            self.player.initialize_sound(track, should_play=True)
        return track

    def pause(self, paused: bool) -> None:
        with self._audio_lock:
            self.audio.is_paused = paused
            should_play = self.audio.should_play
        if self.player is not None:
            self.player.set_playing(should_play)

    def stop(self) -> None:
        with self._audio_lock:
            self.audio = AudioState()
        if self.player is not None:
            self.player.unload()

    def seek_to(self, fraction: float) -> None:
        if self.player is not None:
            self.player.seek_to(fraction)

    def change_track(self, forward: bool) -> Optional[Track]:
        """
        Move to the next or previous track, clamped at the playlist ends

        Returns:
            The current track after the move
        """
        playlist = self.store.selected()
        if playlist is None or not playlist.tracks:
            return None
        with self._audio_lock:
            index = playlist.index_of(self.audio.track_id)
            if index < 0:
                return None
            target = max(0, min(len(playlist.tracks) - 1, index + (1 if forward else -1)))
            if target == index:
                return playlist.tracks[index]
            track = playlist.tracks[target]
            self.audio.track_id = track.id
            should_play = self.audio.should_play
        if self.player is not None:
            self.player.initialize_sound(track, should_play)
        return track

    def track_complete(self) -> Optional[Track]:
        """Advance after the current track finished, stopping after the last one"""
        playlist = self.store.selected()
        index = playlist.index_of(self.audio.track_id) if playlist else -1
        if index < 0 or index + 1 >= len(playlist.tracks):
            self.stop()
            return None
        return self.change_track(forward=True)

    def handle_playback_error(self, error: PlaybackError) -> None:
        """Stop playback and surface the error; no retry, no skipping"""
        self.logger.error(f"Playback stopped: {error.message} - {error.details}")
        self.stop()
        self.store.set_error(error.message)

    def _on_store_event(self, event: str, path: Optional[str]) -> None:
        # Load the current track once its download completes
        if event != 'download_progress' or self.player is None or path != self.store.selected_path:
            return
        track = self.current_track()
        if track is None or track.download_status != DOWNLOAD_COMPLETE:
            return
        if self.player.is_loaded and self.player.track is not None and self.player.track.id == track.id:
            return
        with self._audio_lock:
            should_play = self.audio.should_play
        self.player.initialize_sound(track, should_play)


def _entry_meta(entry: RemoteEntry) -> Dict[str, Any]:
    return {
        'name': entry.name,
        'path_lower': entry.path_lower,
        'path_display': entry.path,
        'rev': entry.rev,
        'server_modified': entry.server_modified,
        'id': entry.id,
    }


def create_synchronizer(settings: Optional[Settings] = None, auth=None, player=None) -> PlaylistSynchronizer:
    """
    Build a synchronizer wired from settings

    Args:
        settings: Application settings, global settings when omitted
        auth: AuthState to use; loaded from the token file when omitted
        player: Optional PlaybackController

    Returns:
        Ready PlaylistSynchronizer with restored local playlists
    """
    from ..config.auth import AuthState

    settings = settings or get_settings()
    auth = auth or AuthState.load(settings.get_token_storage_path())
    filesystem = LocalFileSystem(settings.get_document_root())
    client = DropboxClient(auth, settings.dropbox)

    synchronizer = PlaylistSynchronizer(client, filesystem, player=player, settings=settings)
    synchronizer.restore_local_playlists()
    return synchronizer
