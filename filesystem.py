"""
File System
Local disk operations used by the installer and the folder scanner
"""

import os
import shutil
import stat
import sys
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from errors import ExtractFailed, FilesystemConflict


@dataclass
class DirEntry:
    name: str
    is_dir: bool
    is_file: bool


@dataclass
class FileStats:
    is_file: bool
    is_dir: bool
    size: int
    mtime: datetime


class LocalFileSystem:
    def _handle_remove_readonly(self, func, path, exc):
        """Clear the read-only bit and retry a failed removal (Windows).

        Args:
            func: callable - Function that raised the error
            path: str - File path causing the error
            exc: Exception - Exception info
        """
        os.chmod(path, stat.S_IWRITE)
        func(path)

    def read_dir(self, path):
        """List a directory.

        Returns:
            list - DirEntry items sorted by name
        """
        entries = []
        with os.scandir(path) as it:
            for entry in it:
                entries.append(DirEntry(entry.name, entry.is_dir(), entry.is_file()))
        return sorted(entries, key=lambda e: e.name.lower())

    def mkdir(self, path):
        Path(path).mkdir(parents=True, exist_ok=True)

    def exists(self, path):
        return Path(path).exists()

    def is_dir(self, path):
        return Path(path).is_dir()

    def stat(self, path):
        """Return file stats, or None if the path does not exist."""
        try:
            st = os.stat(path)
        except OSError:
            return None
        return FileStats(
            is_file=stat.S_ISREG(st.st_mode),
            is_dir=stat.S_ISDIR(st.st_mode),
            size=st.st_size,
            mtime=datetime.fromtimestamp(st.st_mtime)
        )

    def copy_recursive(self, source, destination):
        """Copy a folder tree; the destination must not exist."""
        shutil.copytree(source, destination)

    def remove_recursive(self, path):
        """Remove a folder tree, tolerating read-only files.

        Args:
            path: str/Path - Directory to remove; missing directories are ignored

        Raises:
            FilesystemConflict: If the directory exists and cannot be removed
        """
        path = Path(path)
        if not path.exists():
            return

        try:
            shutil.rmtree(path)
        except OSError:
            try:
                if sys.version_info >= (3, 12):
                    shutil.rmtree(path, onexc=self._handle_remove_readonly)
                else:
                    shutil.rmtree(path, onerror=self._handle_remove_readonly)
            except OSError as e:
                raise FilesystemConflict(f'Cannot remove "{path}": {e}')

    def delete_file(self, path):
        """Delete a file; missing files are ignored."""
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def write_file(self, path, content, encoding='utf-8'):
        Path(path).write_text(content, encoding=encoding)

    def read_file(self, path, encoding='utf-8'):
        return Path(path).read_text(encoding=encoding)

    def extract_archive(self, archive_path, destination):
        """Extract a zip archive.

        Args:
            archive_path: str/Path - Zip file
            destination: str/Path - Directory to extract into (created if missing)

        Raises:
            ExtractFailed: If the archive is corrupt or has entries outside the destination
        """
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        root = destination.resolve()

        try:
            with zipfile.ZipFile(archive_path, 'r') as zip_ref:
                for member in zip_ref.namelist():
                    target = (destination / member).resolve()
                    if target != root and root not in target.parents:
                        raise ExtractFailed(f'Archive entry escapes extraction folder: {member}')
                zip_ref.extractall(destination)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
            raise ExtractFailed(f'Failed to extract {archive_path}: {e}')
