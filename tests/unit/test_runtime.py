"""
Unit tests for Docker runtime access (volback/backup/runtime.py).

The Docker client is mocked; no daemon is needed.
"""

from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException, NotFound

from volback.backup.runtime import (
    ARCHIVE_MOUNT,
    COMPRESS,
    EXTRACT,
    VOLUME_MOUNT,
    DockerRuntime,
    RuntimeOperationError,
    archiver_command,
    get_runtime,
)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def docker_runtime(client):
    return DockerRuntime(archiver_image='alpine', client=client)


def _container(name, mounts=None):
    container = MagicMock()
    container.name = name
    container.attrs = {'Mounts': mounts or []}
    return container


class TestArchiverCommand:

    def test_compress(self):
        assert archiver_command(COMPRESS, 'db_20240101_000000.tar.gz') == [
            'tar', '-czf', f'{ARCHIVE_MOUNT}/db_20240101_000000.tar.gz', '-C', VOLUME_MOUNT, '.'
        ]

    def test_extract(self):
        assert archiver_command(EXTRACT, 'db.tar.gz') == [
            'tar', '-xzf', f'{ARCHIVE_MOUNT}/db.tar.gz', '-C', VOLUME_MOUNT
        ]

    def test_invalid_mode(self):
        with pytest.raises(ValueError, match='Invalid archiver mode'):
            archiver_command('zip', 'db.tar.gz')


class TestDockerRuntimeConnection:

    @patch('volback.backup.runtime.docker.from_env')
    def test_connects_from_environment(self, mock_from_env):
        DockerRuntime()

        mock_from_env.assert_called_once()
        mock_from_env.return_value.ping.assert_called_once()

    @patch('volback.backup.runtime.docker.DockerClient')
    def test_connects_to_base_url(self, mock_client_class):
        DockerRuntime(base_url='tcp://docker:2375')

        mock_client_class.assert_called_once_with(base_url='tcp://docker:2375')

    @patch('volback.backup.runtime.docker.from_env', side_effect=DockerException('no socket'))
    def test_unreachable_daemon(self, mock_from_env):
        with pytest.raises(RuntimeOperationError, match='Failed to connect to Docker'):
            DockerRuntime()

    @patch('volback.backup.runtime.docker.DockerClient')
    def test_get_runtime_uses_app_config(self, mock_client_class, app):
        app.config['DOCKER_HOST'] = 'unix:///tmp/docker.sock'
        app.config['ARCHIVER_IMAGE'] = 'busybox'

        with app.app_context():
            runtime = get_runtime()

        assert runtime.archiver_image == 'busybox'
        mock_client_class.assert_called_once_with(base_url='unix:///tmp/docker.sock')


class TestVolumeIntrospection:

    def test_running_volume_names(self, docker_runtime, client):
        client.containers.list.return_value = [
            _container('web', [
                {'Type': 'volume', 'Name': 'app_data'},
                {'Type': 'bind', 'Source': '/etc/hosts'},
            ]),
            _container('db', [
                {'Type': 'volume', 'Name': 'pg_data'},
                {'Type': 'volume', 'Name': 'app_data'},
            ]),
        ]

        assert docker_runtime.list_running_volume_names() == ['app_data', 'pg_data']

    def test_list_volume_names(self, docker_runtime, client):
        volumes = [MagicMock(), MagicMock()]
        volumes[0].name = 'zeta'
        volumes[1].name = 'alpha'
        client.volumes.list.return_value = volumes

        assert docker_runtime.list_volume_names() == ['alpha', 'zeta']

    def test_volume_exists(self, docker_runtime, client):
        assert docker_runtime.volume_exists('db') is True
        client.volumes.get.assert_called_once_with('db')

    def test_volume_does_not_exist(self, docker_runtime, client):
        client.volumes.get.side_effect = NotFound('no such volume')

        assert docker_runtime.volume_exists('db') is False

    def test_volume_exists_api_error(self, docker_runtime, client):
        client.volumes.get.side_effect = APIError('daemon error')

        with pytest.raises(RuntimeOperationError):
            docker_runtime.volume_exists('db')

    def test_containers_using_volume(self, docker_runtime, client):
        client.containers.list.return_value = [_container('A'), _container('B')]

        assert docker_runtime.containers_using_volume('db') == ['A', 'B']
        client.containers.list.assert_called_once_with(all=True, filters={'volume': 'db'})


class TestContainerAndVolumeOperations:

    def test_stop_and_start(self, docker_runtime, client):
        client.containers.get.return_value.status = 'running'

        assert docker_runtime.stop_container('A') is True
        docker_runtime.start_container('A')

        client.containers.get.return_value.stop.assert_called_once()
        client.containers.get.return_value.start.assert_called_once()

    @pytest.mark.parametrize("status", ['exited', 'created', 'dead'])
    def test_stop_skips_container_not_running(self, docker_runtime, client, status):
        client.containers.get.return_value.status = status

        assert docker_runtime.stop_container('A') is False
        client.containers.get.return_value.stop.assert_not_called()

    def test_stop_failure(self, docker_runtime, client):
        client.containers.get.side_effect = NotFound('gone')

        with pytest.raises(RuntimeOperationError, match="Failed to stop container 'A'"):
            docker_runtime.stop_container('A')

    def test_create_volume(self, docker_runtime, client):
        docker_runtime.create_volume('db')

        client.volumes.create.assert_called_once_with(name='db')

    def test_remove_volume_in_use(self, docker_runtime, client):
        client.volumes.get.return_value.remove.side_effect = APIError('volume is in use')

        with pytest.raises(RuntimeOperationError, match="Failed to remove volume 'db'"):
            docker_runtime.remove_volume('db')


class TestRunArchiver:
    """Test the throwaway archiver container."""

    def test_compress_mounts(self, docker_runtime, client, tmp_path):
        helper = client.containers.run.return_value
        helper.wait.return_value = {'StatusCode': 0}
        helper.logs.return_value = b''

        result = docker_runtime.run_archiver(COMPRESS, 'db', str(tmp_path), 'db_20240101_000000.tar.gz')

        assert result.ok
        args, kwargs = client.containers.run.call_args
        assert args == ('alpine',)
        assert kwargs['volumes'] == {
            'db': {'bind': VOLUME_MOUNT, 'mode': 'ro'},
            str(tmp_path.resolve()): {'bind': ARCHIVE_MOUNT, 'mode': 'rw'},
        }
        assert kwargs['command'] == archiver_command(COMPRESS, 'db_20240101_000000.tar.gz')
        assert kwargs['detach'] is True
        helper.remove.assert_called_once_with(force=True)

    def test_extract_mounts(self, docker_runtime, client, tmp_path):
        helper = client.containers.run.return_value
        helper.wait.return_value = {'StatusCode': 0}
        helper.logs.return_value = b''

        docker_runtime.run_archiver(EXTRACT, 'db', str(tmp_path), 'db.tar.gz')

        volumes = client.containers.run.call_args.kwargs['volumes']
        assert volumes['db']['mode'] == 'rw'
        assert volumes[str(tmp_path.resolve())]['mode'] == 'ro'

    def test_non_zero_exit(self, docker_runtime, client, tmp_path):
        helper = client.containers.run.return_value
        helper.wait.return_value = {'StatusCode': 1}
        helper.logs.return_value = b'tar: short read\n'

        result = docker_runtime.run_archiver(COMPRESS, 'db', str(tmp_path), 'db.tar.gz')

        assert not result.ok
        assert result.exit_code == 1
        assert 'short read' in result.output
        helper.remove.assert_called_once_with(force=True)

    def test_container_cannot_start(self, docker_runtime, client, tmp_path):
        client.containers.run.side_effect = APIError('image not found')

        with pytest.raises(RuntimeOperationError, match='Failed to start archiver container'):
            docker_runtime.run_archiver(COMPRESS, 'db', str(tmp_path), 'db.tar.gz')

    def test_helper_removed_when_wait_fails(self, docker_runtime, client, tmp_path):
        helper = client.containers.run.return_value
        helper.wait.side_effect = APIError('connection reset')

        with pytest.raises(RuntimeOperationError):
            docker_runtime.run_archiver(COMPRESS, 'db', str(tmp_path), 'db.tar.gz')

        helper.remove.assert_called_once_with(force=True)
