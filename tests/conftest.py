"""
Shared pytest fixtures for volback tests.

This module provides fixtures for:
- Flask app, database and CLI runner
- Backup settings and archive store rooted in a temporary directory
- A fake Docker runtime that writes real .tar.gz files
- Mock fixtures for the scheduler
"""

import gzip
import io
import tarfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from volback import create_app, db as _db
from volback.backup.naming import archive_filename
from volback.backup.runtime import EXTRACT, ArchiverResult, RuntimeOperationError
from volback.backup.storage import ArchiveStore
from volback.settings import BackupSettings


class FakeRuntime:
    """
    In-memory stand-in for DockerRuntime.

    Compress runs write a real gzip compressed tar into the target directory,
    so integrity verification and rotation run against real files.
    """

    def __init__(self, volumes=None, running=None, containers=None):
        self.volumes = set(volumes or [])
        self.running = list(running or [])
        self.containers = {name: list(users) for name, users in (containers or {}).items()}
        self.calls = []
        self.archiver_exit_codes = {}
        self.corrupt_volumes = set()
        self.extract_exit_code = 0
        self.failing = {}
        self.exited = set()

    def fail(self, operation, argument):
        """Make operation(argument) raise RuntimeOperationError."""
        self.failing.setdefault(operation, set()).add(argument)

    def _check(self, operation, argument):
        self.calls.append((operation, argument))
        if argument in self.failing.get(operation, set()):
            raise RuntimeOperationError(f"{operation} failed for '{argument}'")

    def calls_for(self, operation):
        return [argument for name, argument in self.calls if name == operation]

    def list_running_volume_names(self):
        return sorted(self.running)

    def list_volume_names(self):
        return sorted(self.volumes)

    def volume_exists(self, volume_name):
        self._check('volume_exists', volume_name)
        return volume_name in self.volumes

    def containers_using_volume(self, volume_name):
        self._check('containers_using_volume', volume_name)
        return list(self.containers.get(volume_name, []))

    def stop_container(self, container_name):
        self._check('stop_container', container_name)
        return container_name not in self.exited

    def start_container(self, container_name):
        self._check('start_container', container_name)

    def create_volume(self, volume_name):
        self._check('create_volume', volume_name)
        self.volumes.add(volume_name)

    def remove_volume(self, volume_name):
        self._check('remove_volume', volume_name)
        self.volumes.discard(volume_name)

    def run_archiver(self, mode, volume_name, directory, filename):
        self._check(f'archiver_{mode}', volume_name)
        target = Path(directory) / filename

        if mode == EXTRACT:
            return ArchiverResult(exit_code=self.extract_exit_code,
                                  output='' if self.extract_exit_code == 0 else 'tar: invalid archive')

        exit_code = self.archiver_exit_codes.get(volume_name, 0)
        if exit_code != 0:
            # Leave a truncated file behind, as a killed tar would
            target.write_bytes(b'\x1f\x8b\x08partial')
            return ArchiverResult(exit_code=exit_code, output='tar: read error')

        if volume_name in self.corrupt_volumes:
            target.write_bytes(gzip.compress(b'x' * 4096)[:-12])
            return ArchiverResult(exit_code=0)

        write_volume_archive(target, volume_name)
        return ArchiverResult(exit_code=0)


def write_volume_archive(path, volume_name):
    """Write a small valid .tar.gz standing in for a volume's contents."""
    payload = f"contents of {volume_name}\n".encode()
    with tarfile.open(path, 'w:gz') as tar:
        info = tarfile.TarInfo(name='./data.txt')
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))


def make_archives(store, volume_name, timestamps):
    """Create archives for the given timestamps and return their paths."""
    directory = store.ensure_volume_dir(volume_name)
    paths = []
    for timestamp in timestamps:
        path = directory / archive_filename(volume_name, timestamp)
        write_volume_archive(path, volume_name)
        paths.append(str(path))
    return paths


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database for fast, isolated tests.
    """
    app = create_app('testing', test_config={
        'LOG_DIR': str(tmp_path / 'logs'),
        'DEFAULT_BACKUP_DIR': str(tmp_path / 'backups'),
        'CONFIG_FILE': str(tmp_path / 'backup_config.json'),
    })

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Database with all tables inside an app context.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def runner(app):
    """Flask CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture
def backup_dir(tmp_path):
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture
def store(backup_dir):
    return ArchiveStore(str(backup_dir))


@pytest.fixture
def settings(backup_dir):
    """Settings with a default of 2 archives and one explicit override."""
    return BackupSettings(
        backup_dir=str(backup_dir),
        default_max_backups=2,
        volumes={'app_data': None, 'logs': 3}
    )


@pytest.fixture
def make_runtime():
    """Build a FakeRuntime: make_runtime(volumes=[...], containers={...})."""
    return FakeRuntime


@pytest.fixture
def fake_runtime():
    return FakeRuntime(volumes=['app_data', 'logs', 'db'], running=['app_data', 'db'])


@pytest.fixture
def config_file(app):
    return app.config['CONFIG_FILE']


@pytest.fixture(scope='function')
def mock_scheduler():
    """
    Mock APScheduler for testing scheduler functionality.
    """
    with patch('volback.scheduler.BlockingScheduler') as mock_sched:
        scheduler_instance = MagicMock()
        mock_sched.return_value = scheduler_instance

        scheduler_instance.running = False
        scheduler_instance.get_jobs.return_value = []

        yield scheduler_instance


@pytest.fixture
def archive_factory(store):
    """Create archives on disk: archive_factory('app_data', ['20240101_120000', ...])."""
    def factory(volume_name, timestamps):
        return make_archives(store, volume_name, timestamps)
    return factory


@pytest.fixture
def valid_archive(tmp_path):
    """A standalone valid .tar.gz file."""
    path = tmp_path / 'sample.tar.gz'
    write_volume_archive(path, 'sample')
    return path
