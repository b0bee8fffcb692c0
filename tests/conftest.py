"""Pytest configuration and shared fixtures."""

import gzip
import json
import logging
import os
import shutil
import tempfile
from datetime import date
from unittest.mock import MagicMock

import pytest

from homeserver.config.settings import RetentionPolicy, Settings


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop console handlers installed by CLI invocations."""
    yield
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_homeserver", False):
            root_logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def config_dir(temp_directory):
    """Deployment directory with config.json, a compose file and a secrets tree."""
    path = os.path.join(temp_directory, "opt", "home-server")
    os.makedirs(os.path.join(path, "secrets"))

    storage_root = os.path.join(temp_directory, "mnt", "external-ssd")
    os.makedirs(storage_root)

    with open(os.path.join(path, "config.json"), "w") as f:
        json.dump({"external_drive": storage_root, "version": "1.0.0"}, f)
    with open(os.path.join(path, "docker-compose.yml"), "w") as f:
        f.write("services:\n  immich-postgres:\n    image: postgres:15\n  immich-server:\n    image: immich\n")
    with open(os.path.join(path, "secrets", "db_password"), "w") as f:
        f.write("s3cret\n")
    with open(os.path.join(path, "secrets", "jwt_key"), "wb") as f:
        f.write(os.urandom(64))

    return path


@pytest.fixture
def settings(temp_directory, config_dir):
    """Settings pointing at the temporary deployment and storage root."""
    return Settings(
        storage_root=os.path.join(temp_directory, "mnt", "external-ssd"),
        config_dir=config_dir,
        retention=RetentionPolicy(daily=7, weekly=4, monthly=3),
        tunnel_credentials_dir=os.path.join(temp_directory, "root", ".cloudflared"),
        restore_grace_seconds=0,
        non_interactive=True,
    )


@pytest.fixture
def fake_containers():
    """ContainerManager stand-in; the volume exists and helper runs succeed."""
    containers = MagicMock()
    containers.volume_exists.return_value = True
    containers.run_disposable.return_value = ""
    containers.describe_running.return_value = [
        {"name": "immich-postgres", "status": "Up 3 days"},
        {"name": "immich-server", "status": "Up 3 days"},
    ]
    return containers


@pytest.fixture
def fake_compose():
    """ComposeManager stand-in."""
    compose = MagicMock()
    compose.list_services.return_value = ["immich-postgres", "immich-server"]
    return compose


@pytest.fixture
def fake_database():
    """DatabaseClient stand-in whose dump writes a small gzip file."""
    database = MagicMock()
    database.is_ready.return_value = True

    def dump_to(output_path):
        with gzip.open(output_path, "wb") as f:
            f.write(b"CREATE TABLE assets (id int);\n")
        return output_path

    database.dump_to.side_effect = dump_to
    return database


@pytest.fixture
def backups_root(settings):
    path = settings.backups_root
    os.makedirs(path, exist_ok=True)
    return path


@pytest.fixture
def make_snapshot(backups_root):
    """Factory creating snapshot directories named after a date."""

    def _make(day, time="020000", payload=b"data", markers=()):
        name = f"{day.strftime('%Y%m%d') if isinstance(day, date) else day}_{time}"
        path = os.path.join(backups_root, name)
        os.makedirs(path)
        with open(os.path.join(path, "immich_db.sql.gz"), "wb") as f:
            f.write(payload)
        for marker in markers:
            open(os.path.join(path, marker), "a").close()
        return path

    return _make
