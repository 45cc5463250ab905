"""
Backup settings: backup directory, default retention count and per-volume
retention overrides.

The settings document is stored as JSON:

    {
        "backup_directory": "/srv/backups",
        "default_max_backups": 5,
        "volumes": [{"name": "app_data", "max_backups": 3}, {"name": "logs"}]
    }
"""

import json
import logging
import os
import dataclasses
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Set

logger = logging.getLogger(__name__)

# Used when the configured default itself is unusable
MINIMUM_RETENTION = 1


class SettingsError(Exception):
    """Raised when the settings document cannot be read or written."""
    pass


def parse_retention(value: Any) -> Optional[int]:
    """
    Interpret a retention count.

    Args:
        value: Raw value from the settings document or user input

    Returns:
        Positive integer, or None if the value is missing or invalid
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value >= 1 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number >= 1 else None
    return None


@dataclass(frozen=True)
class BackupSettings:
    """
    Immutable backup settings, constructed once and passed to every component.

    Attributes:
        backup_dir: Base directory for all archives
        default_max_backups: Fallback retention count
        volumes: Volume name -> explicit retention count (None means default)
        schedule: Cron expression for unattended backups in daemon mode
    """

    backup_dir: str
    default_max_backups: int = 5
    volumes: Mapping[str, Optional[int]] = field(default_factory=dict)
    schedule: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'volumes', MappingProxyType(dict(self.volumes)))

    def volume_policy(self, volume_name: str) -> Optional[int]:
        """Return the explicit, valid retention override for a volume, if any."""
        return parse_retention(self.volumes.get(volume_name))

    def resolve_retention(self, volume_name: str) -> int:
        """
        Resolve the number of archives to keep for a volume.

        Falls back to default_max_backups, and to 1 if the default is invalid.
        """
        override = self.volume_policy(volume_name)
        if override is not None:
            return override
        return self.default_retention()

    def default_retention(self) -> int:
        """The default retention count, or 1 if the configured default is invalid."""
        default = parse_retention(self.default_max_backups)
        if default is None:
            logger.warning(
                f"Invalid default_max_backups value '{self.default_max_backups}'. "
                f"Using {MINIMUM_RETENTION}."
            )
            return MINIMUM_RETENTION
        return default

    def configured_volumes(self) -> Set[str]:
        """Volumes processed by unattended backups. Empty means nothing to do."""
        return set(self.volumes)

    def replace(self, **changes) -> 'BackupSettings':
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)

    def to_document(self) -> Dict[str, Any]:
        """Build the JSON document representation."""
        document = {
            'backup_directory': self.backup_dir,
            'default_max_backups': self.default_max_backups,
            'volumes': [
                {'name': name, 'max_backups': self.volumes[name]}
                if self.volumes[name] is not None else {'name': name}
                for name in sorted(self.volumes)
            ],
        }
        if self.schedule:
            document['schedule'] = self.schedule
        return document


def settings_from_document(document: Dict[str, Any], default_backup_dir: str,
                           default_max_backups: int = 5) -> BackupSettings:
    """
    Build BackupSettings from a parsed settings document.

    Args:
        document: Parsed JSON object
        default_backup_dir: Used when backup_directory is missing or empty
        default_max_backups: Used when default_max_backups is missing; a present
            but invalid value falls back to MINIMUM_RETENTION

    Returns:
        BackupSettings instance

    Raises:
        SettingsError: If the document has the wrong shape
    """
    if not isinstance(document, dict):
        raise SettingsError("Settings document must be a JSON object")

    backup_dir = document.get('backup_directory') or default_backup_dir
    if not isinstance(backup_dir, str):
        raise SettingsError(f"Invalid backup_directory: {backup_dir!r}")

    raw_default = document.get('default_max_backups')
    if raw_default is None or raw_default == '':
        default_max = default_max_backups
    else:
        default_max = parse_retention(raw_default)
        if default_max is None:
            logger.warning(f"Invalid default_max_backups value '{raw_default}'. Using {MINIMUM_RETENTION}.")
            default_max = MINIMUM_RETENTION

    entries = document.get('volumes') or []
    if not isinstance(entries, list):
        raise SettingsError("'volumes' must be a list")

    volumes = {}
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get('name'), str) or not entry['name']:
            raise SettingsError(f"Invalid volume entry: {entry!r}")
        # Non-numeric max_backups resolves to the default at lookup time
        volumes[entry['name']] = parse_retention(entry.get('max_backups'))

    schedule = document.get('schedule')
    if schedule is not None and not isinstance(schedule, str):
        raise SettingsError(f"Invalid schedule: {schedule!r}")

    return BackupSettings(
        backup_dir=backup_dir,
        default_max_backups=default_max,
        volumes=volumes,
        schedule=schedule,
    )


def load_settings(path: str, default_backup_dir: str, default_max_backups: int = 5) -> BackupSettings:
    """
    Load settings from a JSON file.

    A missing file yields the defaults.

    Raises:
        SettingsError: If the file is unreadable or not valid JSON
    """
    if not os.path.exists(path):
        logger.info(f"Configuration file '{path}' not found. Using defaults.")
        return BackupSettings(backup_dir=default_backup_dir, default_max_backups=default_max_backups)

    logger.info(f"Loading configuration from '{path}'")
    try:
        with open(path, 'r') as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise SettingsError(f"Configuration file '{path}' contains invalid JSON: {e}")
    except OSError as e:
        raise SettingsError(f"Failed to read configuration file '{path}': {e}")

    settings = settings_from_document(document, default_backup_dir, default_max_backups)
    logger.info(
        f"Config loaded: Dir='{settings.backup_dir}', Max='{settings.default_max_backups}', "
        f"Volumes={sorted(settings.configured_volumes())}"
    )
    return settings


def save_settings(path: str, settings: BackupSettings):
    """
    Write settings to a JSON file.

    Raises:
        SettingsError: If the file cannot be written
    """
    try:
        with open(path, 'w') as f:
            json.dump(settings.to_document(), f, indent=2)
            f.write('\n')
    except OSError as e:
        raise SettingsError(f"Failed to write configuration to '{path}': {e}")

    logger.info(f"Configuration saved to '{path}'")


def get_settings(config_file: Optional[str] = None) -> BackupSettings:
    """
    Load settings using the current Flask app configuration for defaults.

    Args:
        config_file: Settings file path (default: app config CONFIG_FILE)

    Raises:
        SettingsError: If the settings file is invalid
    """
    from flask import current_app

    return load_settings(
        config_file or current_app.config['CONFIG_FILE'],
        default_backup_dir=current_app.config['DEFAULT_BACKUP_DIR'],
        default_max_backups=current_app.config['DEFAULT_MAX_BACKUPS']
    )
