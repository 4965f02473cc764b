"""
Access-token state for Dropbox API access

The application authenticates every Dropbox call with a bearer token. The token
lives in an AuthState object that is created once (from the token file or the
DROPBOX_ACCESS_TOKEN environment variable) and then handed explicitly to the
components that need it. Nothing reads credentials from a module-level global:
the token is looked up from the state at call time, so logging out or
replacing the token takes effect on the very next request.

Token persistence:
- Stored as JSON next to the configuration (security.token_storage_path)
- File permissions restricted to the owner (600) where supported
- Minimal structure: access_token, account_id, saved_at
"""

import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Any

from ..utils.logger import get_logger


logger = get_logger(__name__)


@dataclass
class AuthState:
    """
    Explicit authentication context

    Attributes:
        access_token: Current bearer token (None when logged out)
        account_id: Dropbox account id of the token owner, when known
        token_file: Where the token is persisted, if anywhere
    """
    access_token: Optional[str] = None
    account_id: Optional[str] = None
    token_file: Optional[Path] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_authenticated(self) -> bool:
        """True when a token is present"""
        return bool(self.access_token)

    def get_access_token(self) -> Optional[str]:
        """Read the token at call time"""
        with self._lock:
            return self.access_token

    def authorization_header(self) -> Dict[str, str]:
        """
        Build the Authorization header for a request

        Returns:
            Dictionary with the bearer credential (empty token when logged out)
        """
        return {'Authorization': f"Bearer {self.get_access_token() or ''}"}

    def set_token(self, access_token: str, account_id: Optional[str] = None) -> None:
        """Replace the current token and persist it when a token file is configured"""
        with self._lock:
            self.access_token = access_token
            self.account_id = account_id
        self.save()

    def clear(self) -> None:
        """Forget the token in memory and on disk"""
        with self._lock:
            self.access_token = None
            self.account_id = None
        if self.token_file and self.token_file.exists():
            try:
                self.token_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove token file {self.token_file}: {e}")

    def save(self) -> None:
        """
        Save token information to the token file

        Sets restrictive permissions (owner read/write only) on Unix-like systems.
        """
        if not self.token_file:
            return

        token_data = {
            'access_token': self.access_token,
            'account_id': self.account_id,
            'saved_at': datetime.now().isoformat(),
        }

        try:
            self.token_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.token_file, 'w', encoding='utf-8') as f:
                json.dump(token_data, f, indent=2)
            try:
                self.token_file.chmod(0o600)
            except OSError:
                # chmod is not supported everywhere
                pass
        except OSError as e:
            logger.warning(f"Failed to save token: {e}")

    @classmethod
    def load(cls, token_file: Optional[Path] = None) -> 'AuthState':
        """
        Create an AuthState from the environment or the token file

        DROPBOX_ACCESS_TOKEN takes precedence over the stored token.

        Args:
            token_file: Path of the persisted token

        Returns:
            AuthState (possibly unauthenticated)
        """
        state = cls(token_file=token_file)

        env_token = os.getenv('DROPBOX_ACCESS_TOKEN')
        if env_token:
            state.access_token = env_token
            return state

        token_data = _read_token_file(token_file)
        if token_data:
            state.access_token = token_data.get('access_token')
            state.account_id = token_data.get('account_id')

        return state


def _read_token_file(token_file: Optional[Path]) -> Optional[Dict[str, Any]]:
    if not token_file or not token_file.exists():
        return None

    try:
        with open(token_file, 'r', encoding='utf-8') as f:
            token_data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load stored token: {e}")
        return None

    if not isinstance(token_data, dict) or not token_data.get('access_token'):
        logger.warning("Invalid token structure, login required")
        return None

    return token_data
