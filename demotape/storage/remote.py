"""
Normalization of Dropbox listing entries

Raw entries from ``files/list_folder`` are dictionaries keyed by Dropbox field
names (``.tag``, ``path_display``, ``sharing_info.modified_by`` ...). The
functions here turn them into RemoteEntry objects with derived classification
and offer the filters the browser and playlist discovery rely on. Optional
fields that are missing are treated as absent.
"""

from typing import Any, Dict, Iterable, List, Optional

from .models import Account, RemoteEntry, is_audio_file, is_playlist


def _tag(entry: Dict[str, Any]) -> Optional[str]:
    return entry.get('.tag')


def get_modified_by(entry: Dict[str, Any]) -> Optional[str]:
    """Account id of the last modifier of a shared entry"""
    sharing_info = entry.get('sharing_info') or {}
    return sharing_info.get('modified_by') or None


def is_file_or_folder(entry: Dict[str, Any]) -> bool:
    return _tag(entry) in ('file', 'folder')


def is_folder_or_audio_file(entry: Dict[str, Any]) -> bool:
    """True if entry is a folder or an audio file"""
    return _tag(entry) == 'folder' or (_tag(entry) == 'file' and is_audio_file(entry.get('name')))


def is_folder_or_playlist(entry: Dict[str, Any]) -> bool:
    """True if entry is a folder or a playlist file"""
    return _tag(entry) == 'folder' or (_tag(entry) == 'file' and is_playlist(entry.get('name')))


def transform_file(entry: Dict[str, Any]) -> RemoteEntry:
    """
    Transform a Dropbox file or folder entry into a RemoteEntry

    Args:
        entry: Raw listing entry

    Returns:
        RemoteEntry with classification available as properties
    """
    return RemoteEntry(
        tag=_tag(entry),
        name=entry.get('name', ''),
        path=entry.get('path_display') or entry.get('path_lower'),
        modified_by=get_modified_by(entry),
        id=entry.get('id'),
        rev=entry.get('rev'),
        path_lower=entry.get('path_lower'),
        server_modified=entry.get('server_modified'),
        size=entry.get('size'),
    )


def normalize(raw_entries: Iterable[Dict[str, Any]]) -> List[RemoteEntry]:
    """Normalize a listing, dropping entries that are neither files nor folders"""
    return [transform_file(entry) for entry in raw_entries if is_file_or_folder(entry)]


def get_modified_users_from_entries(entries: Iterable[Any]) -> List[str]:
    """
    Get the distinct modified_by account ids from a list of entries

    Accepts raw entries or RemoteEntry objects. Empty values are dropped.
    """
    users = []
    seen = set()
    for entry in entries:
        user = entry.modified_by if isinstance(entry, RemoteEntry) else get_modified_by(entry)
        if user and user not in seen:
            seen.add(user)
            users.append(user)
    return users


def transform_account(account: Dict[str, Any]) -> Account:
    """Transform a Dropbox account object into an Account"""
    name = account.get('name') or {}
    return Account(
        id=account['account_id'],
        abbreviated_name=name.get('abbreviated_name', ''),
        full_name=name.get('display_name', ''),
        email=account.get('email'),
    )
