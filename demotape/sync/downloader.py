"""
Track download management

DownloadManager runs resumable track downloads on a thread pool and keeps the
download status of each track in the PlaylistStore up to date.

Session rules:
- At most one session per track. Starting a download for a track that already
  has one cancels the old session first; the new session waits for the old
  transfer to stop before touching the partial file.
- Every session carries a generation number. Progress and completion are
  applied only while the session's generation is the track's current one, so
  late callbacks from a superseded or cancelled session are dropped.
- Within one session the status never decreases.

Status values: None (not started), floor(written / total * 100) clamped to
0-99 while the transfer runs, exactly 100 once the file is complete.

Failure handling:
- TransferInterrupted: partial file kept, status left at last progress,
  message surfaced; resumed on the next explicit request, never automatically.
- AuthRejected, RemoteNotFound, TransferFailed: status reset to None, message
  surfaced.
Errors are logged with full detail before any state changes.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from ..storage.dropbox import DropboxClient, ResumableDownload
from ..storage.exceptions import (
    AuthRejected,
    DemotapeError,
    RemoteNotFound,
    TransferFailed,
    TransferInterrupted,
)
from ..storage.local import LocalFileSystem
from ..storage.models import DOWNLOAD_COMPLETE, Track
from ..storage.naming import get_file_name, get_file_path
from ..utils.logger import get_logger
from .store import PlaylistStore


ErrorHandler = Callable[[Track, DemotapeError], None]


def compute_progress(written: int, total: Optional[int]) -> int:
    """
    Download status of an unfinished transfer

    Args:
        written: Bytes written so far
        total: Expected size, None or 0 when unknown

    Returns:
        floor(written / total * 100) clamped to [0, 99]
    """
    if not total or total <= 0:
        return 0
    return max(0, min(DOWNLOAD_COMPLETE - 1, (max(written, 0) * 100) // total))


class SessionState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class DownloadSession:
    """
    One download attempt for one track

    Attributes:
        track: Track being downloaded
        playlist_path: Playlist that requested the download
        generation: Attempt number for this track
        local_path: Final local file path
        remote_path: Dropbox path of the source file
        transfer: Underlying resumable transfer (cancellation handle)
    """
    track: Track
    playlist_path: Optional[str]
    generation: int
    local_path: Path
    remote_path: str
    transfer: Optional[ResumableDownload] = None
    previous: Optional['DownloadSession'] = field(default=None, repr=False)
    future: Optional[Future] = field(default=None, repr=False)
    state: SessionState = SessionState.PENDING
    status: Optional[int] = None
    error: Optional[DemotapeError] = None

    @property
    def done(self) -> bool:
        return self.state not in (SessionState.PENDING, SessionState.RUNNING)

    def cancel(self) -> None:
        """Stop the transfer; a session that has not started yet never starts"""
        if self.future is not None:
            self.future.cancel()
        if self.transfer is not None:
            self.transfer.cancel()
        if not self.done:
            self.state = SessionState.CANCELLED

    def wait(self, timeout: Optional[float] = None) -> SessionState:
        """Block until the session finished (or timeout elapsed)"""
        if self.future is not None:
            wait([self.future], timeout=timeout)
        return self.state


class DownloadManager:
    """Runs track downloads and reports their status to the store"""

    def __init__(
        self,
        client: DropboxClient,
        store: PlaylistStore,
        filesystem: LocalFileSystem,
        max_workers: int = 3,
        on_error: Optional[ErrorHandler] = None,
    ):
        self.client = client
        self.store = store
        self.filesystem = filesystem
        self.logger = get_logger(__name__)
        self.on_error = on_error or (lambda track, error: store.set_error(error.message))

        self._lock = threading.RLock()
        self._sessions: Dict[str, DownloadSession] = {}
        self._generations: Dict[str, int] = {}
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix='download')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def download(self, track: Track, playlist_path: Optional[str] = None) -> DownloadSession:
        """
        Start downloading a track, superseding any session already running for it

        Args:
            track: Track to download
            playlist_path: Playlist the request came from

        Returns:
            The new DownloadSession
        """
        if not track.path:
            raise RemoteNotFound(f"Track has no remote path: {track.name}", details={'track_id': track.id})

        with self._lock:
            previous = self._sessions.get(track.id)
            if previous is not None:
                self.logger.debug(f"Superseding download of {track.name} (generation {previous.generation})")
                previous.cancel()

            generation = self._generations.get(track.id, 0) + 1
            self._generations[track.id] = generation

            session = DownloadSession(
                track=track,
                playlist_path=playlist_path,
                generation=generation,
                local_path=get_file_path(track, self.filesystem.document_root),
                remote_path=track.path,
                previous=previous,
            )
            session.transfer = self.client.download_resumable(
                session.remote_path,
                session.local_path,
                on_progress=lambda written, total: self._on_progress(session, written, total),
            )
            self._sessions[track.id] = session

            session.status = 0
            self.store.update_track_status(track, 0)
            session.future = self._executor.submit(self._run, session)

        self.logger.info(f"Download started: {track.name} -> {session.local_path.name}")
        return session

    def download_tracks(self, tracks: Iterable[Track], playlist_path: Optional[str] = None) -> List[DownloadSession]:
        """Download every track that is not complete yet and has no running session"""
        sessions = []
        for track in tracks:
            if track.is_downloaded or self.get_session(track.id) is not None:
                continue
            sessions.append(self.download(track, playlist_path))
        return sessions

    def get_session(self, track_id: str) -> Optional[DownloadSession]:
        with self._lock:
            return self._sessions.get(track_id)

    def cancel(self, track_id: str) -> bool:
        """
        Cancel the session of a track; its partial file is kept for resuming

        Returns:
            True if a session was cancelled
        """
        with self._lock:
            session = self._sessions.pop(track_id, None)
            if session is None:
                return False
            self._generations[track_id] = self._generations.get(track_id, 0) + 1
            session.cancel()
        self.logger.info(f"Download cancelled: {session.track.name}")
        return True

    def cancel_all(self) -> int:
        with self._lock:
            track_ids = list(self._sessions)
        return sum(1 for track_id in track_ids if self.cancel(track_id))

    def shutdown(self, wait_for_transfers: bool = False) -> None:
        if not wait_for_transfers:
            self.cancel_all()
        self._executor.shutdown(wait=wait_for_transfers)

    def is_downloaded(self, track: Track) -> Track:
        """
        Check whether the track's canonical file exists locally

        Only existence is checked, not content. The canonical name embeds the
        revision, so a new revision is never mistaken for a downloaded file.

        Returns:
            Copy of the track with status 100 if the file exists, else None
        """
        info = self.filesystem.stat_file(get_file_name(track))
        return track.with_status(DOWNLOAD_COMPLETE if info.exists else None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_current(self, session: DownloadSession) -> bool:
        return self._generations.get(session.track.id) == session.generation

    def _apply_status(self, session: DownloadSession, status: Optional[int]) -> bool:
        with self._lock:
            if not self._is_current(session):
                return False
            if status is not None and session.status is not None and status < session.status:
                return False
            session.status = status
            self.store.update_track_status(session.track, status)
            return True

    def _on_progress(self, session: DownloadSession, written: int, total: Optional[int]) -> None:
        if not self._apply_status(session, compute_progress(written, total)):
            self.logger.debug(f"Dropped progress from stale session of {session.track.name}")

    def _release(self, session: DownloadSession) -> None:
        with self._lock:
            if self._sessions.get(session.track.id) is session:
                del self._sessions[session.track.id]

    def _run(self, session: DownloadSession) -> SessionState:
        track = session.track

        if session.previous is not None and session.previous.future is not None:
            # The old transfer may still be writing to the partial file
            wait([session.previous.future])
            session.previous = None

        if not self._is_current(session):
            session.state = SessionState.CANCELLED
            return session.state

        session.state = SessionState.RUNNING
        try:
            result = session.transfer.resume()
        except TransferInterrupted as e:
            self.logger.error(f"Download interrupted: {track.name} ({e.bytes_written} bytes kept) - {e.details}")
            session.error = e
            session.state = SessionState.INTERRUPTED
            if self._is_current(session):
                self.on_error(track, e)
            return session.state
        except (AuthRejected, RemoteNotFound, TransferFailed) as e:
            self.logger.error(f"Download failed: {track.name} - {e.message} - {e.details}")
            self._fail(session, e)
            return session.state
        except OSError as e:
            self.logger.error(f"Download failed writing {session.local_path}: {e}", exc_info=True)
            self._fail(session, TransferFailed(
                f"Cannot write {track.name}",
                details={'path': str(session.local_path), 'original_error': str(e)}
            ))
            return session.state
        finally:
            self._release(session)

        if result is None:
            session.state = SessionState.CANCELLED
            self.logger.debug(f"Download stopped: {track.name}")
            return session.state

        if self._apply_status(session, DOWNLOAD_COMPLETE):
            self.logger.info(f"Download completed: {track.name}")
        session.state = SessionState.COMPLETED
        return session.state

    def _fail(self, session: DownloadSession, error: DemotapeError) -> None:
        session.error = error
        session.state = SessionState.FAILED
        with self._lock:
            if not self._is_current(session):
                return
            session.status = None
            self.store.update_track_status(session.track, None)
        self.on_error(session.track, error)
