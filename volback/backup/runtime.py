"""
Docker runtime access for volume backups.

Wraps the Docker SDK behind a small interface:
- volume and container introspection
- container stop/start and volume create/remove
- the containerized archiver (`tar` inside a throwaway alpine container)

Every Docker error is re-raised as RuntimeOperationError so callers never
depend on docker.errors directly.
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import docker
from docker.errors import DockerException, NotFound

logger = logging.getLogger(__name__)

COMPRESS = 'compress'
EXTRACT = 'extract'

# Mount points inside the archiver container
VOLUME_MOUNT = '/volume_data'
ARCHIVE_MOUNT = '/archive'

# Container states that `docker stop` acts on
RUNNING_STATUSES = frozenset({'running', 'restarting', 'paused'})


class RuntimeOperationError(Exception):
    """Raised when a Docker operation fails."""
    pass


@dataclass
class ArchiverResult:
    """Outcome of one archiver container run."""

    exit_code: int
    output: str = ''

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def archiver_command(mode: str, filename: str) -> List[str]:
    """
    Build the tar command run inside the archiver container.

    Args:
        mode: COMPRESS or EXTRACT
        filename: Archive filename inside ARCHIVE_MOUNT

    Returns:
        Command argument list

    Raises:
        ValueError: If mode is invalid
    """
    archive = f"{ARCHIVE_MOUNT}/{filename}"
    if mode == COMPRESS:
        return ['tar', '-czf', archive, '-C', VOLUME_MOUNT, '.']
    if mode == EXTRACT:
        return ['tar', '-xzf', archive, '-C', VOLUME_MOUNT]
    raise ValueError(f"Invalid archiver mode: {mode}. Valid options: {[COMPRESS, EXTRACT]}")


class DockerRuntime:
    """Volume, container and archiver operations against the Docker daemon."""

    def __init__(self, base_url: Optional[str] = None, archiver_image: str = 'alpine', client=None):
        """
        Initialize Docker client.

        Args:
            base_url: Docker daemon URL (default: environment / local socket)
            archiver_image: Image providing tar and gzip
            client: Preconfigured docker client (mainly for tests)
        """
        self.archiver_image = archiver_image

        if client is not None:
            self.client = client
            return

        try:
            self.client = docker.DockerClient(base_url=base_url) if base_url else docker.from_env()
            self.client.ping()
        except DockerException as e:
            logger.error(f"Failed to connect to Docker: {e}")
            raise RuntimeOperationError(f"Failed to connect to Docker: {e}")

    def list_running_volume_names(self) -> List[str]:
        """Named volumes mounted by currently running containers, sorted and unique."""
        try:
            containers = self.client.containers.list()
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to list running containers: {e}")

        names = set()
        for container in containers:
            for mount in container.attrs.get('Mounts', []):
                if mount.get('Type') == 'volume' and mount.get('Name'):
                    names.add(mount['Name'])
        return sorted(names)

    def list_volume_names(self) -> List[str]:
        """Every volume known to the runtime, sorted."""
        try:
            return sorted(volume.name for volume in self.client.volumes.list())
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to list volumes: {e}")

    def volume_exists(self, volume_name: str) -> bool:
        try:
            self.client.volumes.get(volume_name)
            return True
        except NotFound:
            return False
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to inspect volume '{volume_name}': {e}")

    def containers_using_volume(self, volume_name: str) -> List[str]:
        """
        Names of all containers (running or not) that mount a volume.

        Args:
            volume_name: Volume identifier

        Returns:
            Container names in the order reported by Docker
        """
        try:
            containers = self.client.containers.list(all=True, filters={'volume': volume_name})
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to list containers using volume '{volume_name}': {e}")
        return [container.name for container in containers]

    def stop_container(self, container_name: str) -> bool:
        """
        Stop a container if it is running.

        Returns:
            True if the container was running and has been stopped, False if
            it was already stopped (nothing was done)
        """
        try:
            container = self.client.containers.get(container_name)
            if container.status not in RUNNING_STATUSES:
                return False
            container.stop()
            return True
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to stop container '{container_name}': {e}")

    def start_container(self, container_name: str):
        try:
            self.client.containers.get(container_name).start()
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to start container '{container_name}': {e}")

    def create_volume(self, volume_name: str):
        try:
            self.client.volumes.create(name=volume_name)
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to create volume '{volume_name}': {e}")

    def remove_volume(self, volume_name: str):
        try:
            self.client.volumes.get(volume_name).remove()
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to remove volume '{volume_name}': {e}")

    def run_archiver(self, mode: str, volume_name: str, directory: str, filename: str) -> ArchiverResult:
        """
        Run tar in a throwaway container against a volume.

        In COMPRESS mode the volume is mounted read-only and the archive
        directory read-write; EXTRACT mode is the reverse.

        Args:
            mode: COMPRESS or EXTRACT
            volume_name: Volume to archive or restore into
            directory: Host directory holding the archive
            filename: Archive filename inside directory

        Returns:
            ArchiverResult with the container exit code and output

        Raises:
            RuntimeOperationError: If the container cannot be run at all
        """
        command = archiver_command(mode, filename)
        volume_mode, archive_mode = ('ro', 'rw') if mode == COMPRESS else ('rw', 'ro')
        helper_name = f"volume_{'backup' if mode == COMPRESS else 'restore'}_helper_{uuid.uuid4().hex[:8]}"

        try:
            helper = self.client.containers.run(
                self.archiver_image,
                command=command,
                volumes={
                    volume_name: {'bind': VOLUME_MOUNT, 'mode': volume_mode},
                    str(Path(directory).resolve()): {'bind': ARCHIVE_MOUNT, 'mode': archive_mode},
                },
                name=helper_name,
                detach=True,
            )
        except DockerException as e:
            raise RuntimeOperationError(f"Failed to start archiver container: {e}")

        try:
            result = helper.wait()
            output = helper.logs().decode('utf-8', errors='replace')
            return ArchiverResult(exit_code=result.get('StatusCode', -1), output=output)
        except DockerException as e:
            raise RuntimeOperationError(f"Archiver container failed: {e}")
        finally:
            try:
                helper.remove(force=True)
            except DockerException as e:
                logger.warning(f"Failed to remove archiver container {helper_name}: {e}")


def get_runtime() -> DockerRuntime:
    """
    Create a DockerRuntime from the current Flask app configuration.

    Raises:
        RuntimeOperationError: If the Docker daemon is unreachable
    """
    from flask import current_app

    return DockerRuntime(
        base_url=current_app.config.get('DOCKER_HOST'),
        archiver_image=current_app.config.get('ARCHIVER_IMAGE', 'alpine')
    )
