"""
Local document storage

LocalFileSystem is the only code that touches the document root directly. It
offers the small set of primitives the rest of the application needs (list,
stat, delete, read/write text) and translates OS errors on the directory
itself into StorageUnavailable.

LocalStoreScanner classifies the directory contents into playlist files,
audio files and unrelated files. Each scan re-reads the directory; nothing is
cached between scans.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..utils.logger import get_logger
from .exceptions import StorageUnavailable
from .models import FileKind, LocalFileEntry


@dataclass(frozen=True)
class FileInfo:
    """Result of a stat call"""
    exists: bool
    size: int = 0


class LocalFileSystem:
    """Filesystem primitives rooted at the document directory"""

    def __init__(self, document_root: Union[str, Path]):
        self.document_root = Path(document_root)
        self.logger = get_logger(__name__)

    def ensure_root(self) -> Path:
        """Create the document root if it does not exist yet"""
        try:
            self.document_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(
                f"Cannot create document directory: {self.document_root}",
                details={'path': str(self.document_root), 'original_error': str(e)}
            ) from e
        return self.document_root

    def path_for(self, name: str) -> Path:
        return self.document_root / name

    def read_directory(self) -> List[str]:
        """
        List file names in the document root

        Raises:
            StorageUnavailable: If the directory cannot be read
        """
        try:
            return sorted(entry.name for entry in os.scandir(self.document_root) if entry.is_file())
        except OSError as e:
            raise StorageUnavailable(
                f"Cannot read document directory: {self.document_root}",
                details={'path': str(self.document_root), 'original_error': str(e)}
            ) from e

    def stat_file(self, name: str) -> FileInfo:
        try:
            stat = self.path_for(name).stat()
        except FileNotFoundError:
            return FileInfo(exists=False)
        return FileInfo(exists=True, size=stat.st_size)

    def delete_file(self, name: str) -> None:
        """Delete a file; a file that is already gone is not an error"""
        try:
            self.path_for(name).unlink()
        except FileNotFoundError:
            self.logger.debug(f"Already deleted: {name}")

    def write_text(self, name: str, content: str) -> Path:
        """Write a text file atomically (temporary file + rename)"""
        self.ensure_root()
        target = self.path_for(name)
        temp = target.with_name(f".{target.name}.tmp")
        try:
            temp.write_text(content, encoding='utf-8')
            os.replace(temp, target)
        except OSError as e:
            raise StorageUnavailable(
                f"Cannot write {name}",
                details={'path': str(target), 'original_error': str(e)}
            ) from e
        return target

    def read_text(self, name: str) -> Optional[str]:
        """Read a text file, None when it does not exist"""
        try:
            return self.path_for(name).read_text(encoding='utf-8')
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageUnavailable(
                f"Cannot read {name}",
                details={'path': str(self.path_for(name)), 'original_error': str(e)}
            ) from e


class LocalStoreScanner:
    """Enumerates and classifies the files in the document root"""

    def __init__(self, filesystem: LocalFileSystem):
        self.filesystem = filesystem

    def scan(self) -> Iterator[LocalFileEntry]:
        """
        Classify every file in the document root

        The directory is read when this method is called; iterate the result
        to get the entries. Call again to re-read the directory.

        Raises:
            StorageUnavailable: If the directory cannot be read
        """
        names = self.filesystem.read_directory()
        return (LocalFileEntry(name=name, kind=FileKind.from_name(name)) for name in names)
