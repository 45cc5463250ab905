"""
Local archive storage for volume backups.

Stores archives under the backup root with one directory per volume:
{backup_dir}/{sanitized_volume_name}/{volume_name}_{YYYYMMDD_HHMMSS}.tar.gz

Each volume directory also carries a `.volume_name` marker listing the
original volume names stored in it (one per line), so restores can recover
names that sanitization altered, including volumes whose names collide.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .naming import (
    Archive,
    archive_filename,
    InvalidVolumeName,
    parse_archive_filename,
    sanitize_volume_name,
    split_archive_filename,
)

logger = logging.getLogger(__name__)

VOLUME_NAME_MARKER = '.volume_name'


class PathError(Exception):
    """Raised when an archive directory cannot be created or accessed."""
    pass


@dataclass(frozen=True)
class ArchiveDirectory:
    """One backed up volume found under the backup root."""

    sanitized_name: str
    volume_name: str
    path: str
    has_marker: bool


class ArchiveStore:
    """
    Handler for volume archives in the local filesystem.
    """

    def __init__(self, base_path: str):
        """
        Initialize archive store.

        Args:
            base_path: Backup root directory
        """
        self.base_path = Path(base_path)

    def ensure_base_dir(self):
        """
        Create the backup root if it doesn't exist.

        Raises:
            PathError: If the directory cannot be created
        """
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathError(f"Failed to create backup directory '{self.base_path}': {e}")

    def volume_dir(self, volume_name: str) -> Path:
        """Directory for a volume's archives (not created)."""
        return self.base_path / sanitize_volume_name(volume_name)

    def ensure_volume_dir(self, volume_name: str) -> Path:
        """
        Create the archive directory for a volume and record its original name.

        Args:
            volume_name: Volume identifier

        Returns:
            Path of the volume directory

        Raises:
            InvalidVolumeName: If the name sanitizes to nothing
            PathError: If the directory cannot be created
        """
        path = self.volume_dir(volume_name)

        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathError(f"Failed to create volume backup directory '{path}': {e}")

        marker = path / VOLUME_NAME_MARKER
        try:
            names = self._read_marker(path)
            if volume_name not in names:
                # Different volumes may share a sanitized directory; keep every name
                marker.write_text(''.join(name + '\n' for name in names + [volume_name]))
        except OSError as e:
            raise PathError(f"Failed to record volume name in '{marker}': {e}")

        return path

    def archive_path(self, volume_name: str, timestamp: str) -> Path:
        return self.volume_dir(volume_name) / archive_filename(volume_name, timestamp)

    def list_archives(self, volume_name: str) -> List[Archive]:
        """
        List archives of a volume, newest first.

        Args:
            volume_name: Volume identifier

        Returns:
            List of Archive; empty if the volume has no backups yet

        Raises:
            PathError: If the directory exists but cannot be read
        """
        path = self.volume_dir(volume_name)

        if not path.is_dir():
            return []

        try:
            names = os.listdir(path)
        except OSError as e:
            raise PathError(f"Failed to list archives in '{path}': {e}")

        archives = []
        for name in names:
            timestamp = parse_archive_filename(volume_name, name)
            if timestamp is None or not (path / name).is_file():
                continue
            archives.append(Archive(volume_name=volume_name, timestamp=timestamp, path=str(path / name)))

        # Fixed-width timestamps sort chronologically as strings
        archives.sort(key=lambda archive: archive.timestamp, reverse=True)
        return archives

    def find_archive(self, volume_name: str, filename: str) -> Optional[Archive]:
        """Look up an archive of a volume by filename."""
        for archive in self.list_archives(volume_name):
            if archive.filename == filename:
                return archive
        return None

    def list_volume_directories(self) -> List[ArchiveDirectory]:
        """
        List backed up volumes under the backup root, one entry per volume,
        sorted by directory then volume name.

        Volume names come from the `.volume_name` marker and from the archive
        filenames in each directory; only names that sanitize to that
        directory are kept. A directory with neither is presumed to be named
        after its volume. Directories that cannot belong to any volume are
        skipped with a warning.

        Raises:
            PathError: If the backup root cannot be read
        """
        if not self.base_path.is_dir():
            return []

        try:
            entries = sorted(p for p in self.base_path.iterdir() if p.is_dir())
        except OSError as e:
            raise PathError(f"Failed to list backup directory '{self.base_path}': {e}")

        directories = []
        for entry in entries:
            marked = self._read_marker(entry)
            names = set(marked) | self._names_from_archives(entry)
            names = {name for name in names if self._belongs_to(name, entry.name)}

            if not names:
                if not self._belongs_to(entry.name, entry.name):
                    logger.warning(f"Skipping directory '{entry}': not a volume backup directory")
                    continue
                names = {entry.name}

            for volume_name in sorted(names):
                directories.append(ArchiveDirectory(
                    sanitized_name=entry.name,
                    volume_name=volume_name,
                    path=str(entry),
                    has_marker=volume_name in marked
                ))

        return directories

    def delete(self, archive_path: str):
        """
        Delete an archive file.

        Args:
            archive_path: Full path of the archive

        Raises:
            PathError: If deletion fails
        """
        path = Path(archive_path)

        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise PathError(f"Failed to delete archive '{path}': {e}")

    def _read_marker(self, directory: Path) -> List[str]:
        """Volume names recorded in a directory's marker, in write order."""
        marker = directory / VOLUME_NAME_MARKER
        try:
            lines = marker.read_text().splitlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(f"Could not read volume name marker '{marker}': {e}")
            return []
        return [line.strip() for line in lines if line.strip()]

    def _names_from_archives(self, directory: Path) -> set:
        try:
            filenames = os.listdir(directory)
        except OSError as e:
            logger.warning(f"Could not list '{directory}': {e}")
            return set()

        names = set()
        for filename in filenames:
            parsed = split_archive_filename(filename)
            if parsed is not None:
                names.add(parsed[0])
        return names

    @staticmethod
    def _belongs_to(volume_name: str, directory_name: str) -> bool:
        try:
            return sanitize_volume_name(volume_name) == directory_name
        except InvalidVolumeName:
            return False
