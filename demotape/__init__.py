"""
Demotape: Dropbox playlist sync and offline playback

Demotape keeps playlists (.mix files stored in Dropbox) and the audio tracks
they reference available offline. Playlists are discovered in a Dropbox
folder, cached in a local document root, and their tracks are downloaded on
request with resumable transfers. Files that no playlist references any more
are purged from the document root.

## Packages

**Configuration (`demotape/config/`)**
- YAML and environment variable settings
- Explicit Dropbox authentication state with token persistence

**Storage (`demotape/storage/`)**
- Data models and file classification
- Canonical local file names
- Local document root access and scanning
- Dropbox HTTP client with resumable downloads

**Synchronization (`demotape/sync/`)**
- Thread-safe playlist store
- Download manager with per-track sessions
- Reconciliation and purging of orphaned files
- High-level playlist and playback flows

**Playback (`demotape/player/`)**
- Controller over a host-supplied audio engine

**Utilities (`demotape/utils/`)**
- Logging with colored console output and progress bars
- Helpers for header encoding, timestamps and sizes
"""

__version__ = "0.1.0"

__author__ = "Demotape Team"

__description__ = "Sync Dropbox playlists and their audio tracks for offline playback"

__all__ = [
    "__version__",
    "__author__",
    "__description__"
]
