"""
Backup module for volback.

This module handles the core volume backup functionality including:
- Archive naming and volume name sanitization
- Local archive storage
- Docker runtime access and the containerized archiver
- Execution orchestration
- Retention policy enforcement
- Restore coordination
"""

from .executor import BackupExecutor, BatchResult, backup_volume, run_backups, run_configured_backups
from .naming import Archive, InvalidVolumeName, sanitize_volume_name
from .storage import ArchiveStore, PathError
from .compression import ArchiveError, CorruptArchiveError, verify_archive
from .retention import RetentionManager, select_for_deletion
from .restore import (
    ArchiveNotFound,
    RestoreCancelled,
    RestoreCoordinator,
    RestoreFailed,
    RestoreSession,
    RestoreState,
    restore_volume,
)
from .runtime import DockerRuntime, RuntimeOperationError

__all__ = [
    'BackupExecutor',
    'BatchResult',
    'backup_volume',
    'run_backups',
    'run_configured_backups',
    'Archive',
    'InvalidVolumeName',
    'sanitize_volume_name',
    'ArchiveStore',
    'PathError',
    'ArchiveError',
    'CorruptArchiveError',
    'verify_archive',
    'RetentionManager',
    'select_for_deletion',
    'ArchiveNotFound',
    'RestoreCancelled',
    'RestoreCoordinator',
    'RestoreFailed',
    'RestoreSession',
    'RestoreState',
    'restore_volume',
    'DockerRuntime',
    'RuntimeOperationError'
]
