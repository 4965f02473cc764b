"""
Synchronization engine

PlaylistStore holds playlist state, DownloadManager runs track downloads,
Reconciler purges files no playlist references, and PlaylistSynchronizer
ties them together for the user-facing flows.
"""

# Playlist state shared between the foreground flow and download threads
from .store import PlaylistStore

# Background downloads with per-track sessions
from .downloader import DownloadManager, DownloadSession, SessionState, compute_progress

# Orphan purging
from .cleaner import Reconciler, compute_active_files

# High-level flows
from .synchronizer import PlaylistSynchronizer, create_synchronizer

__all__ = [
    'PlaylistStore',
    'DownloadManager',
    'DownloadSession',
    'SessionState',
    'compute_progress',
    'Reconciler',
    'compute_active_files',
    'PlaylistSynchronizer',
    'create_synchronizer'
]
