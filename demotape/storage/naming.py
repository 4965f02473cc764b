"""
Canonical local file names for tracks and playlists

Every downloaded track is stored under a name derived only from its Dropbox
identity: ``<id>_<rev>.<extension of name>``. Because the name embeds the
revision, a re-uploaded file produces a different local name, and the set of
files that should exist locally can be computed from playlist state alone.

Separator characters (hyphen, em-dash, space) are replaced by underscores and
surrounding whitespace is trimmed. All functions are pure and idempotent.
"""

from pathlib import Path
from typing import Optional, Union

from .models import Track, get_extension


_SEPARATORS = ('-', '—', ' ')


def create_valid_file_name(name: str) -> str:
    """
    Remove invalid characters from a file name

    Args:
        name: Raw file name or title

    Returns:
        Name with separators replaced by "_" and whitespace trimmed
    """
    for separator in _SEPARATORS:
        name = name.replace(separator, '_')
    return name.strip()


def get_file_name(track: Optional[Track]) -> Optional[str]:
    """
    Create the canonical local file name of a track

    >>> get_file_name(Track(id="abc", rev="3", name="My Song.mp3"))
    'abc_3.mp3'
    """
    if track is None:
        return None
    return create_valid_file_name(f"{track.id}_{track.rev}.{get_extension(track.name)}")


def get_file_path(track: Optional[Track], document_root: Union[str, Path]) -> Optional[Path]:
    """Full local path of a track's audio file"""
    file_name = get_file_name(track)
    if file_name is None:
        return None
    return Path(document_root) / file_name


def get_playlist_file_name(name: str) -> str:
    """
    Canonical local file name of a playlist

    Args:
        name: Dropbox file name of the playlist ("Road Trip.mix") or a title
    """
    return create_valid_file_name(name)
