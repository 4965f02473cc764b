"""
Data models for playlists, tracks and storage entries

This module defines the data layer shared by the storage, download and
synchronization components:

1. **Classification**: FileKind and the fixed extension allow-lists that decide
   whether a name is a playlist file, an audio file, or something unrelated.
   Remote entries and local files are classified by exactly the same rules.

2. **Playlist models**: Track, PlaylistMeta, PlaylistData and Playlist. A
   playlist's track order is its play order. Tracks carry a download status:
   None (not started), 0-99 (in progress) or 100 (complete).

3. **Transient entries**: RemoteEntry (normalized Dropbox listing entry),
   LocalFileEntry (file in the document root) and Account.

4. **View models**: TrackView and PlaylistView, the shapes handed to a UI.

Models are plain dataclasses. Status changes go through ``with_status`` which
returns a copy, so snapshots handed to callers never change under them.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Dict, Any

from ..utils.helpers import format_relative_time


AUDIO_EXTENSIONS = ('mp3', 'm4a', 'ovw', 'wav')
PLAYLIST_EXTENSION = 'mix'
PARTIAL_SUFFIX = '.part'

DOWNLOAD_COMPLETE = 100


def get_extension(name: Optional[str] = '') -> str:
    """
    Get extension from file name

    Returns the text after the last dot, or the whole name when it has none.
    """
    return (name or '').split('.')[-1]


def is_audio_file(name: Optional[str]) -> bool:
    """Returns True if file name is an audio file"""
    return get_extension(name).lower() in AUDIO_EXTENSIONS


def is_playlist(name: Optional[str]) -> bool:
    """Returns True if file name is a playlist file"""
    return get_extension(name).lower() == PLAYLIST_EXTENSION


class FileKind(Enum):
    """Classification of a file name by extension"""
    PLAYLIST = "playlist"
    AUDIO = "audio"
    UNRELATED = "unrelated"

    @classmethod
    def from_name(cls, name: str) -> 'FileKind':
        if is_playlist(name):
            return cls.PLAYLIST
        if is_audio_file(name):
            return cls.AUDIO
        return cls.UNRELATED


def clamp_status(status: Optional[int]) -> Optional[int]:
    """Force a download status into {None} or [0, 100]"""
    if status is None:
        return None
    return max(0, min(DOWNLOAD_COMPLETE, int(status)))


@dataclass
class Track:
    """
    Single track of a playlist

    Attributes:
        id: Stable Dropbox file identifier ("id:...")
        rev: Dropbox revision of the file
        name: File name including extension
        path: Remote path the file is downloaded from
        download_status: None, 0-99 while downloading, 100 when complete
    """
    id: str
    rev: str
    name: str
    path: Optional[str] = None
    download_status: Optional[int] = None

    def __post_init__(self):
        self.download_status = clamp_status(self.download_status)

    @property
    def is_downloaded(self) -> bool:
        return self.download_status == DOWNLOAD_COMPLETE

    def with_status(self, status: Optional[int]) -> 'Track':
        """Return a copy of the track with a new download status"""
        return replace(self, download_status=clamp_status(status))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """
        Build a track from a playlist file entry or a Dropbox file entry

        Remote path falls back from ``path`` to ``path_lower`` to ``path_display``.
        """
        return cls(
            id=data['id'],
            rev=data.get('rev', ''),
            name=data.get('name', ''),
            path=data.get('path') or data.get('path_lower') or data.get('path_display'),
            download_status=data.get('downloadStatus'),
        )

    def to_dict(self, include_status: bool = True) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'rev': self.rev,
            'name': self.name,
            'path': self.path,
        }
        if include_status:
            result['downloadStatus'] = self.download_status
        return result


@dataclass
class PlaylistMeta:
    """Dropbox metadata of a playlist file"""
    name: str
    path_lower: str
    path_display: Optional[str] = None
    rev: Optional[str] = None
    server_modified: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlaylistMeta':
        path_display = data.get('path_display') or data.get('path')
        return cls(
            name=data.get('name', ''),
            path_lower=data.get('path_lower') or (path_display or '').lower(),
            path_display=path_display,
            rev=data.get('rev'),
            server_modified=data.get('server_modified'),
            id=data.get('id'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'path_lower': self.path_lower,
            'path_display': self.path_display,
            'rev': self.rev,
            'server_modified': self.server_modified,
            'id': self.id,
        }

    def differs_from(self, other: Optional['PlaylistMeta']) -> bool:
        """True when revision or modification time changed"""
        if other is None:
            return True
        return self.rev != other.rev or self.server_modified != other.server_modified


@dataclass
class PlaylistData:
    """Contents of a playlist file: title and ordered tracks"""
    title: str
    tracks: List[Track] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlaylistData':
        return cls(
            title=data.get('title', ''),
            tracks=[Track.from_dict(t) for t in data.get('tracks', [])],
        )

    def to_dict(self, include_status: bool = True) -> Dict[str, Any]:
        return {
            'title': self.title,
            'tracks': [t.to_dict(include_status) for t in self.tracks],
        }


@dataclass
class Playlist:
    """A playlist: Dropbox metadata plus contents"""
    meta: PlaylistMeta
    data: PlaylistData

    @property
    def path(self) -> str:
        return self.meta.path_lower

    @property
    def title(self) -> str:
        return self.data.title

    @property
    def tracks(self) -> List[Track]:
        return self.data.tracks

    def get_track(self, track_id: str) -> Optional[Track]:
        for track in self.data.tracks:
            if track.id == track_id:
                return track
        return None

    def index_of(self, track_id: Optional[str]) -> int:
        """Position of a track in play order, -1 when absent"""
        for index, track in enumerate(self.data.tracks):
            if track.id == track_id:
                return index
        return -1

    def to_dict(self) -> Dict[str, Any]:
        return {'meta': self.meta.to_dict(), 'data': self.data.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        return cls(
            meta=PlaylistMeta.from_dict(data.get('meta', {})),
            data=PlaylistData.from_dict(data.get('data', {})),
        )


@dataclass
class RemoteEntry:
    """
    Normalized Dropbox listing entry

    Attributes:
        tag: Provider tag, "file" or "folder"
        name: Entry name
        path: Display path
        modified_by: Account id of the last modifier (shared folders only)
    """
    tag: str
    name: str
    path: Optional[str]
    modified_by: Optional[str] = None
    id: Optional[str] = None
    rev: Optional[str] = None
    path_lower: Optional[str] = None
    server_modified: Optional[str] = None
    size: Optional[int] = None

    @property
    def is_folder(self) -> bool:
        return self.tag == 'folder'

    @property
    def is_file(self) -> bool:
        return self.tag == 'file'

    @property
    def is_audio_file(self) -> bool:
        return is_audio_file(self.name)

    @property
    def is_playlist(self) -> bool:
        return is_playlist(self.name)

    def to_track(self) -> Track:
        """Turn an audio file entry into a playlist track"""
        return Track(id=self.id, rev=self.rev or '', name=self.name, path=self.path_lower or self.path)


@dataclass(frozen=True)
class LocalFileEntry:
    """File found in the document root"""
    name: str
    kind: FileKind

    @property
    def is_managed(self) -> bool:
        """Playlist and audio files belong to the application"""
        return self.kind is not FileKind.UNRELATED

    @property
    def partial_of(self) -> Optional[str]:
        """Audio file name an unfinished download will be renamed to, if any"""
        if not self.name.endswith(PARTIAL_SUFFIX):
            return None
        target = self.name[:-len(PARTIAL_SUFFIX)]
        return target if is_audio_file(target) else None


@dataclass
class Account:
    """Dropbox account as shown next to shared entries"""
    id: str
    abbreviated_name: str
    full_name: str
    email: Optional[str] = None


@dataclass
class AudioState:
    """Which track is loaded and whether it is playing"""
    track_id: Optional[str] = None
    is_playing: bool = False
    is_paused: bool = False

    @property
    def should_play(self) -> bool:
        return self.is_playing and not self.is_paused


@dataclass(frozen=True)
class TrackView:
    """Track row for a track list"""
    name: str
    index: int
    download_status: Optional[int]

    @property
    def display_name(self) -> str:
        return f"{self.index + 1}. {self.name}"

    @property
    def can_play(self) -> bool:
        return self.download_status == DOWNLOAD_COMPLETE

    @property
    def is_downloading(self) -> bool:
        return self.download_status is not None and 0 < self.download_status < DOWNLOAD_COMPLETE

    @classmethod
    def from_track(cls, track: Track, index: int) -> 'TrackView':
        return cls(name=track.name, index=index, download_status=track.download_status)


@dataclass(frozen=True)
class PlaylistView:
    """Playlist row for a playlist list"""
    title: str
    path: Optional[str]
    updated: Optional[str]

    @property
    def updated_relative(self) -> str:
        return f"Updated {format_relative_time(self.updated)}"

    @classmethod
    def from_playlist(cls, playlist: Playlist) -> 'PlaylistView':
        return cls(
            title=playlist.data.title,
            path=playlist.meta.path_display,
            updated=playlist.meta.server_modified,
        )
