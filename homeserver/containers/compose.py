"""Docker Compose orchestration for the managed service stack."""

import logging
import os
import subprocess
from typing import List, Optional

import yaml

from homeserver.utils.errors import DockerError

logger = logging.getLogger(__name__)


class ComposeManager:
    """Starts and stops the services defined in the stack's compose file."""

    def __init__(self, compose_file: str, storage_root: str, verbose: bool = False, timeout: int = 600):
        """
        Initialize compose manager.

        Args:
            compose_file: Path to docker-compose.yml
            storage_root: Storage root exported to the compose file
            verbose: Whether to stream compose output
            timeout: Timeout for each compose command in seconds
        """
        self.compose_file = compose_file
        self.storage_root = storage_root
        self.verbose = verbose
        self.timeout = timeout

    def _environment(self) -> dict:
        env = os.environ.copy()
        # The compose file refers to the storage root under both names.
        env["EXTERNAL_DRIVE"] = self.storage_root
        env["STORAGE_PATH"] = self.storage_root
        return env

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        cmd = ["docker", "compose", "-f", self.compose_file, *args]

        if self.verbose:
            logger.debug("Running: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                cwd=os.path.dirname(self.compose_file) or None,
                env=self._environment(),
                capture_output=not self.verbose,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise DockerError(f"'docker compose {' '.join(args)}' timed out") from e
        except FileNotFoundError as e:
            raise DockerError("docker command not found. Please install Docker.") from e

        if result.returncode != 0:
            error_msg = f"'docker compose {' '.join(args)}' failed with exit code {result.returncode}"
            raise DockerError(error_msg, details=(result.stderr or "").strip() or None)

        return result

    def down(self) -> None:
        """Stop and remove all services of the stack."""
        self._run("down")

    def up(self, services: Optional[List[str]] = None) -> None:
        """
        Start services in the background.

        Args:
            services: Services to start (all when omitted)
        """
        self._run("up", "-d", *(services or []))

    def list_services(self) -> List[str]:
        """
        List the services declared in the compose file.

        Returns:
            List[str]: Service names (empty if the file is missing or unreadable)
        """
        try:
            with open(self.compose_file, encoding="utf-8") as f:
                compose_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.debug("Cannot read compose file %s: %s", self.compose_file, e)
            return []

        services = compose_config.get("services") if isinstance(compose_config, dict) else None
        return sorted(services) if isinstance(services, dict) else []
