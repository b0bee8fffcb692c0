"""Runtime settings shared by every backup component."""

import os
from dataclasses import dataclass, field, replace

DEFAULT_CONFIG_DIR = "/opt/home-server"
CONFIG_FILENAME = "config.json"
COMPOSE_FILENAME = "docker-compose.yml"
SECRETS_DIRNAME = "secrets"

SNAPSHOT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass(frozen=True)
class RetentionPolicy:
    """How many snapshots each retention partition keeps."""

    daily: int = 7
    weekly: int = 4
    monthly: int = 3

    def __post_init__(self):
        for name in ("daily", "weekly", "monthly"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} retention must not be negative")


@dataclass(frozen=True)
class Settings:
    """
    Resolved settings for one invocation.

    Built once from the configuration file by ConfigManager.load_settings and
    passed explicitly to the producer, rotator and restore executor.
    """

    storage_root: str
    config_dir: str = DEFAULT_CONFIG_DIR
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    database_container: str = "immich-postgres"
    database_service: str = "immich-postgres"
    database_name: str = "immich"
    database_user: str = "postgres"
    volume_name: str = "portainer_data"
    helper_image: str = "alpine"
    tunnel_credentials_dir: str = "/root/.cloudflared"
    upload_owner_uid: int = 1000
    upload_owner_gid: int = 1000
    restore_grace_seconds: float = 10
    non_interactive: bool = False

    @property
    def config_file(self) -> str:
        return os.path.join(self.config_dir, CONFIG_FILENAME)

    @property
    def compose_file(self) -> str:
        return os.path.join(self.config_dir, COMPOSE_FILENAME)

    @property
    def secrets_dir(self) -> str:
        return os.path.join(self.config_dir, SECRETS_DIRNAME)

    @property
    def backups_root(self) -> str:
        return os.path.join(self.storage_root, "backups")

    @property
    def immich_root(self) -> str:
        return os.path.join(self.storage_root, "immich")

    @property
    def upload_dir(self) -> str:
        return os.path.join(self.immich_root, "upload")

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with the given fields replaced; None values are ignored."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})
