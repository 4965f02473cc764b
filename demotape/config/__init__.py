"""
Configuration management package for Demotape

1. Settings Management (settings.py):
   - Application configuration from YAML files and environment variables
   - Settings validation
   - Configuration persistence

2. Authentication State (auth.py):
   - Explicit AuthState handed to the Dropbox client
   - Token persistence with restrictive file permissions
   - DROPBOX_ACCESS_TOKEN environment override

Usage:

    from demotape.config import get_settings, AuthState

    settings = get_settings()
    auth = AuthState.load(settings.get_token_storage_path())
"""

from .settings import get_settings, reload_settings, Settings
from .auth import AuthState

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
    'AuthState'
]
