"""
Removal of local files that no playlist references any more

The active set is computed from playlist state alone: the canonical file name
of every playlist plus the canonical file name of every one of its tracks.
Playlist and audio files in the document root that are not in the active set
are deleted, along with unfinished downloads (`<audio name>.part`) of audio
files that are not active. Files of any other kind are never touched.
"""

import threading
from typing import Iterable, List, Set

from ..storage.local import LocalFileSystem, LocalStoreScanner
from ..storage.models import Playlist
from ..storage.naming import get_file_name, get_playlist_file_name
from ..utils.logger import get_logger


def compute_active_files(playlists: Iterable[Playlist]) -> Set[str]:
    """Canonical names of all playlist files and their track files"""
    active = set()
    for playlist in playlists:
        active.add(get_playlist_file_name(playlist.meta.name))
        active.update(get_file_name(track) for track in playlist.tracks)
    return active


class Reconciler:
    """Purges orphaned playlist and audio files from the document root"""

    def __init__(self, filesystem: LocalFileSystem):
        self.filesystem = filesystem
        self.scanner = LocalStoreScanner(filesystem)
        self.logger = get_logger(__name__)
        self._purge_lock = threading.Lock()

    def find_orphans(self, playlists: Iterable[Playlist]) -> List[str]:
        """Names that would be deleted for the given playlist state"""
        active = compute_active_files(playlists)
        orphans = []
        for entry in self.scanner.scan():
            if entry.is_managed and entry.name not in active:
                orphans.append(entry.name)
            elif entry.partial_of and entry.partial_of not in active:
                orphans.append(entry.name)
        return orphans

    def reconcile_and_purge(self, playlists: Iterable[Playlist]) -> List[str]:
        """
        Delete inactive playlist and audio files and their partial downloads

        Only one purge runs at a time; a request made while another purge is
        running is ignored. Individual delete failures are logged and the
        remaining files are still processed.

        Args:
            playlists: Current playlist state

        Returns:
            Names of the files that were deleted

        Raises:
            StorageUnavailable: If the document root cannot be read
        """
        if not self._purge_lock.acquire(blocking=False):
            self.logger.debug("Purge already running, request ignored")
            return []

        try:
            candidates = self.find_orphans(playlists)
            purged = []
            for name in candidates:
                try:
                    self.filesystem.delete_file(name)
                except OSError as e:
                    self.logger.error(f"Failed to delete {name}: {e}")
                    continue
                purged.append(name)

            if purged:
                self.logger.info(f"Purged {len(purged)} inactive files: {', '.join(purged)}")
            return purged
        finally:
            self._purge_lock.release()
