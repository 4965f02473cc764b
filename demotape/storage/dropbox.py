"""
Dropbox HTTP API client

A thin client over the Dropbox v2 HTTP endpoints used by the application:

- ``files/list_folder`` (+ ``/continue``) for listings
- ``files/get_metadata`` for revision/modification checks
- ``files/download`` for playlist contents and resumable track downloads
- ``files/upload`` for saving playlists
- ``users/get_current_account`` and ``users/get_account_batch`` for accounts
- ``auth/token/revoke`` for logout

Credentials come from an explicit AuthState and are read on every request.

Content endpoints take their arguments in the ``Dropbox-API-Arg`` header, which
must be plain ASCII; arguments are therefore encoded with encode_header_value.

Error mapping:
    401                          -> AuthRejected
    409 with "not_found" summary -> RemoteNotFound
    429, 5xx, connection errors  -> TransferInterrupted (recoverable)
    any other non-2xx            -> TransferFailed
"""

import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from ..config.auth import AuthState
from ..config.settings import DropboxConfig
from ..utils.helpers import encode_header_value
from ..utils.logger import get_logger
from .exceptions import AuthRejected, RemoteNotFound, TransferFailed, TransferInterrupted
from .models import PARTIAL_SUFFIX


ProgressCallback = Callable[[int, Optional[int]], None]

_TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)

logger = get_logger(__name__)


def _error_summary(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return body.get('error_summary') or str(body.get('error', ''))
    return str(body)


def raise_for_dropbox_error(response: requests.Response, path: Optional[str] = None) -> None:
    """
    Translate a non-2xx Dropbox response into a Demotape exception

    Args:
        response: HTTP response
        path: Remote path involved, for error details
    """
    if response.status_code < 400:
        return

    summary = _error_summary(response)
    details = {'path': path, 'status_code': response.status_code, 'error_summary': summary}

    if response.status_code == 401:
        raise AuthRejected("Dropbox rejected the access token, please log in again", details)
    if response.status_code == 409 and 'not_found' in summary:
        raise RemoteNotFound(f"File not found in Dropbox: {path}", details)
    if response.status_code == 429 or response.status_code >= 500:
        raise TransferInterrupted(f"Dropbox is temporarily unavailable ({response.status_code})", details)
    raise TransferFailed(f"Dropbox request failed: {summary or response.status_code}", details)


class ResumableDownload:
    """
    One resumable file transfer from the Dropbox content endpoint

    Bytes are written to ``<local_path>.part``; the partial file is renamed to
    the final path only after the whole body arrived, so the final path exists
    only for complete files. ``resume()`` continues from the partial file with
    an HTTP Range request.
    """

    def __init__(
        self,
        client: 'DropboxClient',
        remote_path: str,
        local_path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.client = client
        self.remote_path = remote_path
        self.local_path = Path(local_path)
        self.partial_path = self.local_path.with_name(self.local_path.name + PARTIAL_SUFFIX)
        self.on_progress = on_progress
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop the transfer after the chunk currently being written"""
        self._cancelled.set()

    def download(self) -> Optional[Path]:
        """Download from scratch, discarding any partial file"""
        if self.partial_path.exists():
            self.partial_path.unlink()
        return self._transfer(offset=0)

    def resume(self) -> Optional[Path]:
        """Continue from the partial file if there is one"""
        offset = self.partial_path.stat().st_size if self.partial_path.exists() else 0
        return self._transfer(offset=offset)

    def _report(self, written: int, total: Optional[int]) -> None:
        if self.on_progress:
            self.on_progress(written, total)

    def _transfer(self, offset: int) -> Optional[Path]:
        """
        Run the transfer

        Returns:
            Final path on success, None if cancelled

        Raises:
            TransferInterrupted: Network failure; partial file is kept
            AuthRejected, RemoteNotFound, TransferFailed: See module docstring
        """
        headers = {'Dropbox-API-Arg': encode_header_value({'path': self.remote_path})}
        if offset:
            headers['Range'] = f"bytes={offset}-"

        written = offset
        try:
            with self.client.post_content('files/download', headers=headers, stream=True) as response:
                if response.status_code == 416 and offset:
                    # Partial file already holds the whole body
                    return self._finish(written, written)

                raise_for_dropbox_error(response, self.remote_path)

                if response.status_code == 206:
                    total = _total_from_content_range(response.headers.get('Content-Range'))
                    mode = 'ab'
                else:
                    written = 0
                    mode = 'wb'
                    total = None
                if total is None:
                    length = response.headers.get('Content-Length')
                    total = written + int(length) if length else None

                self.partial_path.parent.mkdir(parents=True, exist_ok=True)
                self._report(written, total)
                with open(self.partial_path, mode) as f:
                    for chunk in response.iter_content(chunk_size=self.client.config.chunk_size):
                        if self.cancelled:
                            logger.debug(f"Transfer cancelled: {self.remote_path}")
                            return None
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
                            self._report(written, total)
        except _TRANSIENT_ERRORS as e:
            raise TransferInterrupted(
                f"Download interrupted: {self.remote_path}",
                details={'path': self.remote_path, 'original_error': str(e)},
                bytes_written=written,
            ) from e

        if self.cancelled:
            return None
        if total is not None and written < total:
            raise TransferInterrupted(
                f"Download ended early: {self.remote_path}",
                details={'path': self.remote_path, 'expected': total, 'received': written},
                bytes_written=written,
            )
        return self._finish(written, total if total is not None else written)

    def _finish(self, written: int, total: int) -> Path:
        os.replace(self.partial_path, self.local_path)
        self._report(written, total)
        return self.local_path


def _total_from_content_range(value: Optional[str]) -> Optional[int]:
    # "bytes 100-999/1000"
    if not value or '/' not in value:
        return None
    total = value.rsplit('/', 1)[1].strip()
    return int(total) if total.isdigit() else None


class DropboxClient:
    """Dropbox API access bound to an explicit AuthState"""

    def __init__(self, auth: AuthState, config: Optional[DropboxConfig] = None, session: Optional[requests.Session] = None):
        self.auth = auth
        self.config = config or DropboxConfig()
        self.session = session or requests.Session()
        self.logger = get_logger(__name__)

    @property
    def timeout(self):
        return (self.config.connect_timeout, self.config.read_timeout)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = self.auth.authorization_header()
        if extra:
            headers.update(extra)
        return headers

    def rpc(self, endpoint: str, payload: Optional[Dict[str, Any]] = None, path: Optional[str] = None) -> Any:
        """
        Call an RPC endpoint with a JSON body

        Raises:
            TransferInterrupted: On network failures
        """
        url = f"{self.config.api_url}/{endpoint}"
        try:
            if payload is None:
                response = self.session.post(url, headers=self._headers(), timeout=self.timeout)
            else:
                response = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except _TRANSIENT_ERRORS as e:
            raise TransferInterrupted(
                f"Cannot reach Dropbox ({endpoint})",
                details={'path': path, 'original_error': str(e)},
            ) from e

        raise_for_dropbox_error(response, path)
        if not response.content:
            return None
        return response.json()

    def post_content(self, endpoint: str, headers: Optional[Dict[str, str]] = None, data: Optional[bytes] = None, stream: bool = False) -> requests.Response:
        """POST to a content endpoint; caller handles the response"""
        url = f"{self.config.content_url}/{endpoint}"
        return self.session.post(url, headers=self._headers(headers), data=data, stream=stream, timeout=self.timeout)

    def list_entries(self, path: str, recursive: bool = False) -> List[Dict[str, Any]]:
        """
        List all entries of a folder, following pagination cursors

        Args:
            path: Folder path ("" or "/" for the root)
            recursive: Include sub-folders

        Returns:
            Raw Dropbox entries
        """
        folder = '' if path in ('', '/') else path
        result = self.rpc('files/list_folder', {
            'path': folder,
            'recursive': recursive,
            'include_deleted': False,
        }, path=path)
        entries = list(result.get('entries', []))

        while result.get('has_more'):
            result = self.rpc('files/list_folder/continue', {'cursor': result['cursor']}, path=path)
            entries.extend(result.get('entries', []))

        self.logger.debug(f"Listed {len(entries)} entries in '{path or '/'}'")
        return entries

    def get_metadata(self, path: str) -> Dict[str, Any]:
        return self.rpc('files/get_metadata', {'path': path}, path=path)

    def download_content(self, path: str) -> bytes:
        """Download a small file fully into memory"""
        headers = {'Dropbox-API-Arg': encode_header_value({'path': path})}
        try:
            response = self.post_content('files/download', headers=headers)
        except _TRANSIENT_ERRORS as e:
            raise TransferInterrupted(
                f"Download interrupted: {path}",
                details={'path': path, 'original_error': str(e)},
            ) from e
        raise_for_dropbox_error(response, path)
        return response.content

    def download_resumable(self, remote_path: str, local_path: Union[str, Path], on_progress: Optional[ProgressCallback] = None) -> ResumableDownload:
        """Create (but do not start) a resumable download"""
        return ResumableDownload(self, remote_path, local_path, on_progress)

    def upload_file(self, contents: bytes, path: str, overwrite: bool = True, mute: bool = True) -> Dict[str, Any]:
        """
        Upload a file, never renaming on conflict

        Args:
            contents: File contents
            path: Destination path in Dropbox
            overwrite: Replace a previous version of the file
            mute: Do not notify users of the change

        Returns:
            New Dropbox metadata of the file
        """
        arg = {
            'path': path,
            'mode': 'overwrite' if overwrite else 'add',
            'autorename': False,
            'mute': mute,
        }
        headers = {
            'Dropbox-API-Arg': encode_header_value(arg),
            'Content-Type': 'application/octet-stream',
        }
        try:
            response = self.post_content('files/upload', headers=headers, data=contents)
        except _TRANSIENT_ERRORS as e:
            raise TransferInterrupted(
                f"Upload interrupted: {path}",
                details={'path': path, 'original_error': str(e)},
            ) from e
        raise_for_dropbox_error(response, path)
        return response.json()

    def get_current_account(self) -> Dict[str, Any]:
        return self.rpc('users/get_current_account')

    def get_accounts(self, account_ids: List[str]) -> List[Dict[str, Any]]:
        if not account_ids:
            return []
        return self.rpc('users/get_account_batch', {'account_ids': list(account_ids)}) or []

    def revoke_token(self) -> None:
        self.rpc('auth/token/revoke')
