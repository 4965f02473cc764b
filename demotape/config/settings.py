"""
Configuration management for Demotape

This module handles loading, validation, and management of application settings
from YAML files and environment variables. It provides a centralized configuration
system shared by the storage, download and synchronization layers.

The configuration is organized into logical sections using dataclasses:
- Local storage settings (document root holding playlists and audio files)
- Dropbox endpoint settings (API hosts, transfer chunk size, timeouts)
- Download preferences (background concurrency)
- Synchronization behaviour (root folder, listing cache timeout, purging)
- Logging and security configuration

Credentials are never part of Settings; they live in an explicit AuthState
(see auth.py) which is handed to the components that talk to Dropbox.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


@dataclass
class StorageConfig:
    """
    Local storage configuration

    The document root is the single flat directory in which every playlist
    snapshot and every downloaded track lives. The reconciliation engine
    treats it as owned by the application (for playlist and audio files only).
    """
    document_root: str = "~/.demotape/documents"


@dataclass
class DropboxConfig:
    """
    Dropbox HTTP API endpoints and transfer tuning

    Only the RPC host (listing, metadata, upload of small files, accounts) and
    the content host (file download/upload) are used.
    """
    api_url: str = "https://api.dropboxapi.com/2"
    content_url: str = "https://content.dropboxapi.com/2"
    chunk_size: int = 65536
    connect_timeout: int = 15
    read_timeout: int = 60


@dataclass
class DownloadConfig:
    """Background download settings"""
    concurrency: int = 3


@dataclass
class SyncConfig:
    """
    Synchronization configuration for playlist updates

    Controls where playlists are discovered, how long a remote listing is
    considered fresh, and whether local files are purged after a playlist
    is removed.
    """
    root_folder: str = ""
    cache_timeout_minutes: int = 5
    purge_after_delete: bool = True
    recursive_listing: bool = True


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    Controls application logging behavior including log levels, file output,
    rotation, and console formatting.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class SecurityConfig:
    """
    Security and storage configuration

    Controls where the access token is stored between runs.
    """
    token_storage_path: str = "~/.demotape/token.json"
    config_directory: str = "~/.demotape/"


class Settings:
    """
    Main settings class that manages all configuration

    Loads settings from YAML files, then overrides them with environment
    variables, and offers a unified interface for accessing configuration
    throughout the application.
    """

    SECTIONS = ('storage', 'dropbox', 'download', 'sync', 'logging', 'security')

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".demotape"

        self.storage = StorageConfig()
        self.dropbox = DropboxConfig()
        self.download = DownloadConfig()
        self.sync = SyncConfig()
        self.logging = LoggingConfig()
        self.security = SecurityConfig()

        self._load_config()
        self._load_environment_variables()

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches for configuration files in multiple locations in order of
        precedence. The first file found will be used.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except (OSError, yaml.YAMLError) as e:
                    print(f"Warning: Failed to load config from {path}: {e}")

        self._apply_config(config_data)

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only attributes that exist on the section dataclass are updated;
        unknown sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        for section_name, section_data in config_data.items():
            if section_name in self.SECTIONS and isinstance(section_data, dict):
                config_obj = getattr(self, section_name)
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """Environment variables take precedence over file-based configuration"""
        env_mappings = {
            'DEMOTAPE_DOCUMENT_ROOT': lambda v: setattr(self.storage, 'document_root', v),
            'DEMOTAPE_ROOT_FOLDER': lambda v: setattr(self.sync, 'root_folder', v),
            'DEMOTAPE_LOG_LEVEL': lambda v: setattr(self.logging, 'level', v),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                setter(value)

    def get_document_root(self) -> Path:
        """
        Get the expanded document root path

        Returns:
            Path object for the document root
        """
        return Path(self.storage.document_root).expanduser()

    def get_config_directory(self) -> Path:
        """
        Get the expanded config directory path

        Returns:
            Path object for the configuration directory
        """
        return Path(self.security.config_directory).expanduser()

    def get_token_storage_path(self) -> Path:
        """
        Get the expanded token storage path

        Returns:
            Path object for the token storage file
        """
        return Path(self.security.token_storage_path).expanduser()

    def save_config(self, path: Optional[str] = None) -> None:
        """
        Save current configuration to a YAML file

        Args:
            path: Custom path to save config, defaults to user config directory

        Raises:
            OSError: If the configuration cannot be written
        """
        if not path:
            path = self.get_config_directory() / "config.yaml"
        else:
            path = Path(path)

        config_data = {
            section: dict(getattr(self, section).__dict__)
            for section in self.SECTIONS
        }

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f, default_flow_style=False, indent=2)

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Returns:
            List of human-readable validation errors (empty when valid)
        """
        errors = []

        if not self.storage.document_root:
            errors.append("storage.document_root must not be empty")

        if self.download.concurrency < 1:
            errors.append(f"Invalid download concurrency: {self.download.concurrency}")

        if self.dropbox.chunk_size <= 0:
            errors.append(f"Invalid dropbox chunk size: {self.dropbox.chunk_size}")

        if self.sync.cache_timeout_minutes < 0:
            errors.append(f"Invalid cache timeout: {self.sync.cache_timeout_minutes}")

        return errors

    def __str__(self) -> str:
        sections = [
            f"Documents: {self.storage.document_root}",
            f"Root folder: {self.sync.root_folder or '/'}",
            f"Concurrency: {self.download.concurrency}",
        ]
        return f"Settings({', '.join(sections)})"


# Global settings instance, created on first access
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance
    """
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global settings
    settings = Settings(config_path)
    return settings
