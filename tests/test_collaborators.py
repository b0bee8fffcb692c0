"""Tests for the Docker, Compose and PostgreSQL collaborators."""

import gzip
import os
import subprocess
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import ContainerError, DockerException, NotFound

from homeserver.backup.database import DatabaseClient
from homeserver.containers.compose import ComposeManager
from homeserver.containers.manager import ContainerManager
from homeserver.utils.errors import DatabaseError, DockerError


class TestComposeManager:
    """Test docker compose invocations."""

    def setup_method(self):
        """Setup test environment."""
        self.compose = ComposeManager("/opt/home-server/docker-compose.yml", "/mnt/external-ssd")

    def test_down(self):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

            self.compose.down()

        cmd = mock_run.call_args[0][0]
        kwargs = mock_run.call_args[1]
        assert cmd == ["docker", "compose", "-f", "/opt/home-server/docker-compose.yml", "down"]
        assert kwargs["cwd"] == "/opt/home-server"
        assert kwargs["env"]["EXTERNAL_DRIVE"] == "/mnt/external-ssd"
        assert kwargs["env"]["STORAGE_PATH"] == "/mnt/external-ssd"

    def test_up_single_service(self):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

            self.compose.up(["immich-postgres"])

        assert mock_run.call_args[0][0][-3:] == ["up", "-d", "immich-postgres"]

    def test_failure_raises(self):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="no such service")

            with pytest.raises(DockerError) as exc_info:
                self.compose.up()

        assert exc_info.value.details == "no such service"

    def test_docker_missing(self):
        with patch("subprocess.run", side_effect=FileNotFoundError("docker")):
            with pytest.raises(DockerError):
                self.compose.down()

    def test_timeout(self):
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("docker", 600)):
            with pytest.raises(DockerError):
                self.compose.down()

    def test_list_services(self, config_dir):
        compose = ComposeManager(os.path.join(config_dir, "docker-compose.yml"), "/mnt/external-ssd")

        assert compose.list_services() == ["immich-postgres", "immich-server"]

    def test_list_services_missing_file(self, temp_directory):
        compose = ComposeManager(os.path.join(temp_directory, "docker-compose.yml"), "/mnt/external-ssd")

        assert compose.list_services() == []


class TestContainerManager:
    """Test Docker SDK usage."""

    def setup_method(self):
        """Setup test environment."""
        self.manager = ContainerManager()
        self.client = MagicMock()
        self.manager._client = self.client

    def test_client_unreachable(self):
        manager = ContainerManager()
        with patch("docker.from_env", side_effect=DockerException("connection refused")):
            with pytest.raises(DockerError) as exc_info:
                manager.client

        assert exc_info.value.suggestions

    def test_ping(self):
        assert self.manager.ping() is True

        manager = ContainerManager()
        with patch("docker.from_env", side_effect=DockerException("connection refused")):
            assert manager.ping() is False

    def test_volume_exists(self):
        assert self.manager.volume_exists("portainer_data") is True

        self.client.volumes.get.side_effect = NotFound("no such volume")
        assert self.manager.volume_exists("portainer_data") is False

    def test_run_disposable(self):
        self.client.containers.run.return_value = b"done"

        output = self.manager.run_disposable("alpine", ["true"], volumes={"portainer_data": {"bind": "/data"}})

        assert output == "done"
        kwargs = self.client.containers.run.call_args[1]
        assert kwargs["remove"] is True
        assert kwargs["volumes"] == {"portainer_data": {"bind": "/data"}}

    def test_run_disposable_failure(self):
        self.client.containers.run.side_effect = ContainerError(
            MagicMock(), 2, ["tar"], "alpine", b"tar: short read"
        )

        with pytest.raises(DockerError) as exc_info:
            self.manager.run_disposable("alpine", ["tar"], volumes={})

        assert "status 2" in exc_info.value.message
        assert exc_info.value.details == "tar: short read"

    def test_list_running(self):
        container = MagicMock()
        container.name = "immich-server"
        container.attrs = {"Status": "Up 2 hours"}
        self.client.containers.list.return_value = [container]

        assert self.manager.list_running() == [{"name": "immich-server", "status": "Up 2 hours"}]

    def test_describe_running_without_docker(self):
        manager = ContainerManager()
        with patch("docker.from_env", side_effect=DockerException("connection refused")):
            assert manager.describe_running() is None


class TestDatabaseClient:
    """Test PostgreSQL commands run through docker exec."""

    def setup_method(self):
        """Setup test environment."""
        self.client = DatabaseClient("immich-postgres", "postgres", "immich")

    def test_is_ready(self):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            assert self.client.is_ready() is True

            mock_run.return_value = MagicMock(returncode=2)
            assert self.client.is_ready() is False

        assert mock_run.call_args[0][0] == ["docker", "exec", "immich-postgres", "pg_isready", "-U", "postgres"]

    def test_is_ready_without_docker(self):
        with patch("subprocess.run", side_effect=FileNotFoundError("docker")):
            assert self.client.is_ready() is False

    def test_drop_and_create(self):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stderr="")

            self.client.drop_database()
            self.client.create_database()

        statements = [call[0][0][-1] for call in mock_run.call_args_list]
        assert statements == ['DROP DATABASE IF EXISTS "immich";', 'CREATE DATABASE "immich";']

    def test_execute_failure(self):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stderr="permission denied")

            with pytest.raises(DatabaseError) as exc_info:
                self.client.drop_database()

        assert exc_info.value.details == "permission denied"

    def test_dump_to(self, temp_directory):
        output = os.path.join(temp_directory, "immich_db.sql.gz")
        process = MagicMock()
        process.stdout = open(os.devnull, "rb")
        process.wait.return_value = 0

        with patch("subprocess.Popen", return_value=process) as mock_popen:
            self.client.dump_to(output)

        assert mock_popen.call_args[0][0] == ["docker", "exec", "immich-postgres", "pg_dump", "-U", "postgres", "immich"]
        with gzip.open(output, "rb") as f:
            assert f.read() == b""

    def test_dump_failure_removes_partial_file(self, temp_directory):
        output = os.path.join(temp_directory, "immich_db.sql.gz")
        process = MagicMock()
        process.stdout = open(os.devnull, "rb")
        process.wait.return_value = 1

        with patch("subprocess.Popen", return_value=process):
            with pytest.raises(DatabaseError):
                self.client.dump_to(output)

        assert not os.path.exists(output)

    def test_replay(self, temp_directory):
        dump = os.path.join(temp_directory, "immich_db.sql.gz")
        with gzip.open(dump, "wb") as f:
            f.write(b"CREATE TABLE assets (id int);\n")
        process = MagicMock()
        process.wait.return_value = 0

        with patch("subprocess.Popen", return_value=process) as mock_popen:
            self.client.replay(dump)

        assert mock_popen.call_args[0][0] == ["docker", "exec", "-i", "immich-postgres", "psql", "-U", "postgres", "immich"]
        written = b"".join(call[0][0] for call in process.stdin.write.call_args_list)
        assert written == b"CREATE TABLE assets (id int);\n"

    def test_replay_failure(self, temp_directory):
        dump = os.path.join(temp_directory, "immich_db.sql.gz")
        with gzip.open(dump, "wb") as f:
            f.write(b"SELECT 1;\n")
        process = MagicMock()
        process.wait.return_value = 3

        with patch("subprocess.Popen", return_value=process):
            with pytest.raises(DatabaseError):
                self.client.replay(dump)
