"""
Archive checks for volume backups.

Archives themselves are written by the containerized archiver (see
runtime.py); this module verifies the gzip stream afterwards, independently
of the archiver, in the same way `gzip -t` does.
"""

import gzip
import os
import zlib


class ArchiveError(Exception):
    """Raised when the archiver fails to produce an archive."""
    pass


class CorruptArchiveError(ArchiveError):
    """Raised when a written archive fails integrity verification."""
    pass


# Read size while walking the gzip stream
CHUNK_SIZE = 1024 * 1024


def verify_archive(archive_path: str) -> bool:
    """
    Check the structural validity of a gzip compressed archive.

    Decompresses the whole stream (including every gzip member) and checks
    the CRC and length trailers, without keeping the data.

    Args:
        archive_path: Path to the .tar.gz file

    Returns:
        True if the stream is valid, False otherwise
    """
    if not os.path.isfile(archive_path) or os.path.getsize(archive_path) == 0:
        return False

    try:
        with gzip.open(archive_path, 'rb') as stream:
            while stream.read(CHUNK_SIZE):
                pass
    except (OSError, EOFError, zlib.error):
        return False

    return True


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Args:
        archive_path: Path to the archive file

    Returns:
        File size in bytes

    Raises:
        ArchiveError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise ArchiveError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise ArchiveError(f"Failed to get archive size: {e}")
