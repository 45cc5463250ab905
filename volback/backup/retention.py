"""
Retention policy enforcement for volume backups.

Keeps the newest N archives of a volume and deletes the rest.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence

from .naming import Archive
from .storage import ArchiveStore, PathError

logger = logging.getLogger(__name__)


def select_for_deletion(archives: Sequence[Archive], keep: Any) -> List[Archive]:
    """
    Pick the archives that fall outside the newest-`keep` window.

    Args:
        archives: Archives sorted newest first
        keep: Number of archives to keep; invalid values are clamped to 1

    Returns:
        Archives to delete (archives[keep:])
    """
    if isinstance(keep, bool) or not isinstance(keep, int) or keep < 1:
        logger.warning(f"Invalid max_backups value '{keep}'. Using default 1.")
        keep = 1

    return list(archives[keep:])


class RetentionManager:
    """
    Manages retention policy enforcement for volume archives.
    """

    def __init__(self, store: ArchiveStore):
        """
        Initialize retention manager.

        Args:
            store: Archive store holding the volume directories
        """
        self.store = store
        self.logs = []

    def rotate(self, volume_name: str, keep: Any) -> Dict[str, Any]:
        """
        Enforce the retention count for one volume.

        A failed deletion is recorded and the remaining deletions are still
        attempted.

        Args:
            volume_name: Volume identifier
            keep: Number of newest archives to keep

        Returns:
            Dict with summary:
            {
                'kept': List[str],
                'deleted': List[str],
                'errors': List[str]
            }
        """
        archives = self.store.list_archives(volume_name)
        result = {
            'kept': [],
            'deleted': [],
            'errors': []
        }

        if not archives:
            self._log(f"No archives found for volume '{volume_name}'. Skipping rotation.")
            return result

        to_delete = select_for_deletion(archives, keep)
        doomed = {archive.path for archive in to_delete}
        result['kept'] = [archive.path for archive in archives if archive.path not in doomed]

        self._log(f"Rotating backups for volume: {volume_name} (keeping {len(result['kept'])} of {len(archives)})")

        for archive in to_delete:
            try:
                self.store.delete(archive.path)
                result['deleted'].append(archive.path)
                self._log(f"Deleted old backup: {archive.path}")
            except PathError as e:
                error_msg = f"Failed to delete old backup {archive.path}: {e}"
                result['errors'].append(error_msg)
                self._log(error_msg, level=logging.ERROR)

        return result

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)
