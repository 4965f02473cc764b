"""
Storage layer: models, naming, local document root and Dropbox access

Everything that knows about file names, file kinds, the local directory or
the Dropbox HTTP API lives in this package. Higher layers work with the
models and the two storage front-ends (LocalFileSystem and DropboxClient).
"""

from .exceptions import (
    DemotapeError,
    StorageUnavailable,
    AuthRejected,
    RemoteNotFound,
    TransferInterrupted,
    TransferFailed,
    PlaybackError
)
from .models import (
    FileKind,
    Track,
    PlaylistMeta,
    PlaylistData,
    Playlist,
    RemoteEntry,
    LocalFileEntry,
    Account,
    AudioState,
    TrackView,
    PlaylistView,
    is_audio_file,
    is_playlist
)
from .naming import create_valid_file_name, get_file_name, get_file_path, get_playlist_file_name
from .local import LocalFileSystem, LocalStoreScanner
from .dropbox import DropboxClient, ResumableDownload

__all__ = [
    # Errors
    'DemotapeError',
    'StorageUnavailable',
    'AuthRejected',
    'RemoteNotFound',
    'TransferInterrupted',
    'TransferFailed',
    'PlaybackError',

    # Models
    'FileKind',
    'Track',
    'PlaylistMeta',
    'PlaylistData',
    'Playlist',
    'RemoteEntry',
    'LocalFileEntry',
    'Account',
    'AudioState',
    'TrackView',
    'PlaylistView',
    'is_audio_file',
    'is_playlist',

    # Naming
    'create_valid_file_name',
    'get_file_name',
    'get_file_path',
    'get_playlist_file_name',

    # Storage access
    'LocalFileSystem',
    'LocalStoreScanner',
    'DropboxClient',
    'ResumableDownload'
]
