"""Docker container management for the home server backup tool."""

import logging
from typing import Any, Dict, List, Optional

import docker
from docker.errors import APIError, ContainerError, DockerException, ImageNotFound, NotFound

from homeserver.utils.errors import DockerError, create_error_suggestions

logger = logging.getLogger(__name__)


class ContainerManager:
    """Manages Docker volumes and disposable helper containers."""

    def __init__(self, verbose: bool = False):
        """
        Initialize container manager.

        Args:
            verbose: Whether to enable verbose output
        """
        self.verbose = verbose
        self._client = None

    @property
    def client(self) -> Any:
        """Get Docker client, creating it if necessary."""
        if self._client is None:
            try:
                self._client = docker.from_env()
                # Test connection
                self._client.ping()
            except DockerException as e:
                raise DockerError(
                    f"Cannot connect to Docker daemon: {e}",
                    suggestions=create_error_suggestions("docker_not_running"),
                ) from e

        return self._client

    def ping(self) -> bool:
        """Check whether the Docker daemon is reachable."""
        try:
            self.client.ping()
            return True
        except (DockerError, DockerException) as e:
            logger.debug("Docker ping failed: %s", e)
            return False

    def volume_exists(self, name: str) -> bool:
        """
        Check whether a named volume exists.

        Args:
            name: Volume name

        Returns:
            bool: True if the volume exists
        """
        try:
            self.client.volumes.get(name)
            return True
        except NotFound:
            return False
        except APIError as e:
            raise DockerError(f"Failed to inspect volume '{name}': {e}") from e

    def run_disposable(
        self,
        image: str,
        command: List[str],
        volumes: Dict[str, Dict[str, str]],
    ) -> str:
        """
        Run a helper container to completion and remove it.

        Args:
            image: Image to run (pulled if missing)
            command: Command to execute in the container
            volumes: Volume bindings in docker SDK format

        Returns:
            str: Container output

        Raises:
            DockerError: If the container cannot start or exits non-zero
        """
        if self.verbose:
            logger.debug("Running %s: %s", image, " ".join(command))

        try:
            output = self.client.containers.run(
                image,
                command,
                volumes=volumes,
                remove=True,
                stdout=True,
                stderr=True,
            )
        except ContainerError as e:
            stderr = e.stderr.decode("utf-8", "replace").strip() if e.stderr else ""
            raise DockerError(
                f"Helper container exited with status {e.exit_status}",
                details=stderr or None,
            ) from e
        except ImageNotFound as e:
            raise DockerError(f"Image '{image}' not found: {e}") from e
        except APIError as e:
            raise DockerError(f"Failed to run helper container: {e}") from e

        return output.decode("utf-8", "replace") if isinstance(output, bytes) else str(output or "")

    def list_running(self) -> List[Dict[str, str]]:
        """
        List running containers.

        Returns:
            List[Dict[str, str]]: name and status for each running container
        """
        try:
            containers = self.client.containers.list()
        except APIError as e:
            raise DockerError(f"Failed to list containers: {e}") from e

        return [
            {"name": container.name, "status": container.attrs.get("Status") or container.status}
            for container in containers
        ]

    def describe_running(self) -> Optional[List[Dict[str, str]]]:
        """Like list_running(), but returns None when Docker is unavailable."""
        try:
            return self.list_running()
        except DockerError as e:
            logger.debug("Could not list containers: %s", e)
            return None
