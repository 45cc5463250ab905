"""
Backup executor - orchestrates the complete backup workflow for a volume.

Workflow:
1. Create BackupHistory record (status: running)
2. Create the volume's archive directory
3. Run the containerized archiver (volume mounted read-only)
4. Verify the gzip stream of the new archive
5. Rotate old archives according to the retention count
6. Update BackupHistory (status: success/failed)

A failed or corrupt archive is always deleted before the failure is reported.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from volback import db
from volback.models import BackupHistory
from volback.settings import BackupSettings
from .compression import ArchiveError, CorruptArchiveError, get_archive_size, verify_archive
from .naming import Archive, archive_filename, generate_timestamp
from .retention import RetentionManager
from .runtime import COMPRESS, RuntimeOperationError
from .storage import ArchiveStore, PathError

logger = logging.getLogger(__name__)


class BackupExecutor:
    """
    Orchestrates the complete backup workflow for one volume.
    """

    def __init__(self, volume_name: str, settings: BackupSettings, store: ArchiveStore, runtime):
        """
        Initialize backup executor.

        Args:
            volume_name: Volume to back up
            settings: Backup settings (retention counts)
            store: Archive store rooted at the backup directory
            runtime: Runtime providing run_archiver()
        """
        self.volume_name = volume_name
        self.settings = settings
        self.store = store
        self.runtime = runtime
        self.history_record = None
        self.archive = None
        self.archive_path = None
        self.error = None
        self.logs = []

    def execute(self) -> BackupHistory:
        """
        Execute the backup.

        Returns:
            BackupHistory record with execution results. On failure the
            exception is kept in self.error.
        """
        self.history_record = BackupHistory(
            volume_name=self.volume_name,
            status='running',
            started_at=datetime.utcnow()
        )
        db.session.add(self.history_record)
        db.session.commit()

        self._log(f"Starting backup for volume: {self.volume_name}")

        try:
            self._execute_workflow()

            self.history_record.status = 'success'
            self.history_record.completed_at = datetime.utcnow()
            self._log(f"Successfully backed up volume '{self.volume_name}' to '{self.archive_path}'")

        except Exception as e:
            self.error = e
            self.history_record.status = 'failed'
            self.history_record.completed_at = datetime.utcnow()
            self.history_record.error_message = str(e)
            self._log(f"Backup of volume '{self.volume_name}' failed: {e}", level=logging.ERROR)

        finally:
            self.history_record.logs = '\n'.join(self.logs)
            db.session.commit()

        return self.history_record

    @property
    def succeeded(self) -> bool:
        return self.history_record is not None and self.history_record.status == 'success'

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        # Step 1: Archive directory
        volume_dir = self.store.ensure_volume_dir(self.volume_name)

        # Step 2: Run archiver
        timestamp = generate_timestamp()
        filename = archive_filename(self.volume_name, timestamp)
        self.archive_path = str(volume_dir / filename)
        self._log(f"Archiving volume '{self.volume_name}' into {volume_dir}")
        self._run_archiver(str(volume_dir), filename)

        # Step 3: Verify
        self._log(f"Verifying backup file: {self.archive_path}")
        if not verify_archive(self.archive_path):
            self._discard_archive()
            raise CorruptArchiveError(
                f"Verification failed for backup file '{self.archive_path}'. It might be corrupted."
            )
        self._log("Backup file integrity verified.")

        self.archive = Archive(volume_name=self.volume_name, timestamp=timestamp, path=self.archive_path)
        file_size = get_archive_size(self.archive_path)
        self.history_record.archive_path = self.archive_path
        self.history_record.file_size_bytes = file_size
        self._log(f"Archive created: {filename} ({file_size / 1024 / 1024:.2f} MB)")

        # Step 4: Rotate
        self._rotate()

    def _run_archiver(self, directory: str, filename: str):
        """
        Run the archiver container for this volume.

        Raises:
            ArchiveError: If the archiver cannot run or exits non-zero
        """
        try:
            result = self.runtime.run_archiver(COMPRESS, self.volume_name, directory, filename)
        except RuntimeOperationError as e:
            self._discard_archive()
            raise ArchiveError(f"Failed to back up volume '{self.volume_name}': {e}")

        if not result.ok:
            self._discard_archive()
            detail = f": {result.output.strip()}" if result.output.strip() else ''
            raise ArchiveError(
                f"Failed to back up volume '{self.volume_name}' "
                f"(archiver exit code {result.exit_code}){detail}"
            )

    def _rotate(self):
        """Apply the retention count; deletion failures do not fail the backup."""
        keep = self.settings.resolve_retention(self.volume_name)
        manager = RetentionManager(self.store)
        try:
            result = manager.rotate(self.volume_name, keep)
        except PathError as e:
            # The new archive is already verified; keep it and report the skip
            self.logs.extend(manager.logs)
            self._log(f"Skipping rotation for volume '{self.volume_name}': {e}", level=logging.WARNING)
            return
        self.logs.extend(manager.logs)

        self.history_record.retention_kept = len(result['kept'])
        self.history_record.retention_deleted = len(result['deleted'])
        for error in result['errors']:
            logger.warning(error)

    def _discard_archive(self):
        """Remove a partial or corrupt archive."""
        if not self.archive_path:
            return
        try:
            self.store.delete(self.archive_path)
        except PathError as e:
            self._log(f"Failed to remove incomplete archive '{self.archive_path}': {e}", level=logging.ERROR)

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


@dataclass
class BatchResult:
    """Aggregate outcome of backing up several volumes."""

    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    archives: Dict[str, Archive] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        parts = [f"{len(self.succeeded)} succeeded", f"{len(self.failed)} failed"]
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        text = ', '.join(parts)
        if self.failed:
            text += f" (failed: {', '.join(sorted(self.failed))})"
        return text


def backup_volume(volume_name: str, settings: BackupSettings, store: ArchiveStore, runtime) -> Archive:
    """
    Back up a single volume.

    Returns:
        The verified Archive

    Raises:
        InvalidVolumeName, PathError, ArchiveError, CorruptArchiveError
    """
    executor = BackupExecutor(volume_name, settings, store, runtime)
    executor.execute()
    if executor.error is not None:
        raise executor.error
    return executor.archive


def run_backups(volume_names: Iterable[str], settings: BackupSettings, store: ArchiveStore,
                runtime, result: Optional[BatchResult] = None) -> BatchResult:
    """
    Back up volumes one after another.

    A failing volume never stops the remaining ones.

    Args:
        volume_names: Volumes to back up, in order
        settings: Backup settings
        store: Archive store
        runtime: Runtime providing run_archiver()
        result: Existing BatchResult to add to

    Returns:
        BatchResult naming succeeded and failed volumes
    """
    if result is None:
        result = BatchResult()

    for volume_name in volume_names:
        executor = BackupExecutor(volume_name, settings, store, runtime)
        executor.execute()

        if executor.succeeded:
            result.succeeded.append(volume_name)
            result.archives[volume_name] = executor.archive
        else:
            result.failed[volume_name] = str(executor.error)

    if result.failed:
        logger.error(f"One or more volume backups failed: {', '.join(sorted(result.failed))}")
    return result


def run_configured_backups(settings: BackupSettings, store: ArchiveStore, runtime) -> BatchResult:
    """
    Unattended backup of every configured volume.

    Configured volumes missing from the runtime are skipped with a warning.

    Returns:
        BatchResult; an empty configuration yields an empty, successful result
    """
    result = BatchResult()
    configured = sorted(settings.configured_volumes())

    if not configured:
        logger.info("No volumes configured. Nothing to back up.")
        return result

    logger.info(f"Checking configured volumes: {', '.join(configured)}")

    present = []
    for volume_name in configured:
        try:
            exists = runtime.volume_exists(volume_name)
        except RuntimeOperationError as e:
            result.failed[volume_name] = str(e)
            logger.error(str(e))
            continue

        if not exists:
            logger.warning(f"Configured volume '{volume_name}' not found. Skipping.")
            result.skipped.append(volume_name)
            continue
        present.append(volume_name)

    run_backups(present, settings, store, runtime, result=result)

    if not result.succeeded and not result.failed:
        logger.info("No existing volumes found matching the configuration.")
    return result
