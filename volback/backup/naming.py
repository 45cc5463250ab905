"""
Archive naming for volume backups.

Archives are laid out as:
    {backup_dir}/{sanitized_volume_name}/{volume_name}_{YYYYMMDD_HHMMSS}.tar.gz
"""

import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S'
ARCHIVE_EXTENSION = '.tar.gz'

_TIMESTAMP_PATTERN = re.compile(r'^\d{8}_\d{6}$')
_PATH_SEPARATORS = re.compile(r'[/\\]')
_UNSAFE_CHARACTERS = re.compile(r'[^A-Za-z0-9_-]')
_ARCHIVE_FILENAME_PATTERN = re.compile(r'^(?P<volume>.+)_(?P<timestamp>\d{8}_\d{6})\.tar\.gz$')


class InvalidVolumeName(ValueError):
    """Raised when a volume name cannot be turned into a directory name."""
    pass


@dataclass(frozen=True)
class Archive:
    """A timestamped snapshot of a volume on disk."""

    volume_name: str
    timestamp: str
    path: str

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    @property
    def created_at(self) -> datetime:
        return datetime.strptime(self.timestamp, TIMESTAMP_FORMAT)


def sanitize_volume_name(volume_name: str) -> str:
    """
    Map a volume name to a filesystem-safe directory name.

    Path separators become underscores, then everything that is not an ASCII
    letter, digit, underscore or hyphen is dropped.

    Args:
        volume_name: Volume identifier as reported by the runtime

    Returns:
        Sanitized name

    Raises:
        InvalidVolumeName: If nothing usable is left (only separators or symbols)
    """
    sanitized = _UNSAFE_CHARACTERS.sub('', _PATH_SEPARATORS.sub('_', volume_name or ''))

    # A name made of separators alone collapses to underscores
    if not re.search(r'[A-Za-z0-9]', sanitized):
        raise InvalidVolumeName(
            f"Could not generate a valid directory name for volume '{volume_name}'"
        )

    return sanitized


def generate_timestamp(now: Optional[datetime] = None) -> str:
    """Fixed-width timestamp that sorts chronologically as a string."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def archive_filename(volume_name: str, timestamp: str) -> str:
    """
    Generate the archive filename for a volume.

    Format: {volume_name}_{YYYYMMDD_HHMMSS}.tar.gz
    """
    return f"{volume_name}_{timestamp}{ARCHIVE_EXTENSION}"


def archive_dir(backup_dir: str, volume_name: str) -> str:
    """Directory holding every archive of a volume."""
    return os.path.join(backup_dir, sanitize_volume_name(volume_name))


def archive_path(backup_dir: str, volume_name: str, timestamp: str) -> str:
    """Full path of a volume archive for a timestamp."""
    return os.path.join(archive_dir(backup_dir, volume_name), archive_filename(volume_name, timestamp))


def parse_archive_filename(volume_name: str, filename: str) -> Optional[str]:
    """
    Extract the timestamp from an archive filename.

    Args:
        volume_name: Volume the archive should belong to
        filename: Filename (without directory)

    Returns:
        Timestamp string, or None if the file is not an archive of this volume
    """
    prefix = f"{volume_name}_"
    if not filename.startswith(prefix) or not filename.endswith(ARCHIVE_EXTENSION):
        return None

    timestamp = filename[len(prefix):-len(ARCHIVE_EXTENSION)]
    if not _TIMESTAMP_PATTERN.match(timestamp):
        return None
    return timestamp


def split_archive_filename(filename: str) -> Optional[Tuple[str, str]]:
    """
    Recover (volume_name, timestamp) from an archive filename.

    Returns:
        Tuple of volume name and timestamp, or None if the filename is not an archive
    """
    match = _ARCHIVE_FILENAME_PATTERN.match(filename)
    if match is None:
        return None
    return match.group('volume'), match.group('timestamp')
