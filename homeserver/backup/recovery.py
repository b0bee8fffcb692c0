"""Restoring the home server stack from a snapshot."""

import logging
import os
import time
from typing import Callable, Optional

import click

from homeserver.config.settings import Settings
from homeserver.containers.compose import ComposeManager
from homeserver.containers.manager import ContainerManager
from homeserver.secrets.cipher import SecretsCipher
from homeserver.secrets.passphrase import obtain_passphrase
from homeserver.utils.archive import Archiver
from homeserver.utils.errors import (
    DockerError,
    HomeServerError,
    RestoreError,
    SnapshotNotFoundError,
    create_error_suggestions,
)
from homeserver.utils.files import FileManager
from homeserver.utils.logging import log_success, print_header

from .database import DatabaseClient
from .lock import BackupLock
from .models import (
    CONFIG_COPY,
    DATABASE_DUMP,
    SECRETS_ARCHIVE,
    UPLOAD_ARCHIVE,
    VOLUME_ARCHIVE,
    RestoreResult,
    Snapshot,
)

logger = logging.getLogger(__name__)


class RecoveryManager:
    """
    Applies a snapshot back onto the live system.

    Unlike backup, restore stops at the first failing step and raises
    RestoreError. Nothing is rolled back; the system stays in whatever state
    the last successful step left it.
    """

    def __init__(
        self,
        settings: Settings,
        containers: Optional[ContainerManager] = None,
        compose: Optional[ComposeManager] = None,
        database: Optional[DatabaseClient] = None,
        archiver: Optional[Archiver] = None,
        cipher: Optional[SecretsCipher] = None,
        passphrase_provider: Optional[Callable[[], Optional[str]]] = None,
        sleep: Callable[[float], None] = time.sleep,
        verbose: bool = False,
    ):
        """
        Initialize recovery manager.

        Args:
            settings: Resolved settings for this run
            containers: Docker SDK wrapper (helper containers)
            compose: Compose orchestrator for the service stack
            database: Client for the PostgreSQL container
            archiver: Archiver used for the upload tree
            cipher: Cipher used for the secrets archive
            passphrase_provider: Callable returning the decryption passphrase
            sleep: Used for the database start-up grace period
            verbose: Enable verbose output
        """
        self.settings = settings
        self.verbose = verbose
        self.containers = containers or ContainerManager(verbose=verbose)
        self.compose = compose or ComposeManager(settings.compose_file, settings.storage_root, verbose=verbose)
        self.database = database or DatabaseClient(
            settings.database_container,
            settings.database_user,
            settings.database_name,
            verbose=verbose,
        )
        self.archiver = archiver or Archiver(verbose=verbose)
        self.cipher = cipher or SecretsCipher(verbose=verbose)
        self.file_manager = FileManager(verbose=verbose)
        self.passphrase_provider = passphrase_provider or self._prompt_passphrase
        self.sleep = sleep

    def _prompt_passphrase(self) -> Optional[str]:
        return obtain_passphrase("Enter decryption password", non_interactive=self.settings.non_interactive)

    def restore(self, snapshot_path: str, confirm: bool = True) -> RestoreResult:
        """
        Restore every artifact present in a snapshot.

        Args:
            snapshot_path: Snapshot directory to restore from
            confirm: Ask the operator before overwriting live data

        Returns:
            RestoreResult: Restored parts, or cancelled=True if the operator declined

        Raises:
            SnapshotNotFoundError: If the snapshot directory does not exist
            LockError: If another run holds the backup lock
            RestoreError: If any restore step fails
        """
        if not os.path.isdir(snapshot_path):
            raise SnapshotNotFoundError(
                f"Backup directory not found: {snapshot_path}",
                suggestions=create_error_suggestions("snapshot_not_found"),
            )

        snapshot = Snapshot(path=os.path.abspath(snapshot_path))
        result = RestoreResult(snapshot_path=snapshot.path)

        print_header("Restoring from Backup")
        logger.warning("This will OVERWRITE existing data!")

        if confirm and not self.settings.non_interactive:
            if not click.confirm(f"Are you sure you want to restore from {snapshot.path}?", default=False):
                logger.info("Restore cancelled")
                result.cancelled = True
                return result

        with BackupLock(self.settings.backups_root):
            if snapshot.has(DATABASE_DUMP):
                self._step("database", "Checking database service...", self._require_database_service)

            self._step("services", "Stopping services...", self.compose.down)

            if snapshot.has(DATABASE_DUMP):
                self._step("database", "Restoring database...", lambda: self.restore_database(snapshot))
                log_success(logger, "Database restored")
                result.restored.append("database")

            if snapshot.has(UPLOAD_ARCHIVE):
                self._step("uploads", "Restoring uploads...", lambda: self.restore_uploads(snapshot))
                log_success(logger, "Uploads restored")
                result.restored.append("uploads")

            if snapshot.has(VOLUME_ARCHIVE):
                self._step(
                    "volumes",
                    f"Restoring {self.settings.volume_name} volume...",
                    lambda: self.restore_volume(snapshot),
                )
                log_success(logger, "Volume %s restored", self.settings.volume_name)
                result.restored.append("volumes")

            if snapshot.has(CONFIG_COPY):
                self._step(
                    "config",
                    "Restoring configuration...",
                    lambda: self.file_manager.copy_file(snapshot.artifact(CONFIG_COPY), self.settings.config_file),
                )
                log_success(logger, "Configuration restored")
                result.restored.append("config")

            if snapshot.has(SECRETS_ARCHIVE):
                self._step("secrets", "Restoring secrets...", lambda: self.restore_secrets(snapshot))
                log_success(logger, "Secrets restored")
                result.restored.append("secrets")

            self._step("services", "Starting all services...", self.compose.up)

        log_success(logger, "Restore complete!")
        return result

    def _step(self, name: str, banner: str, action: Callable[[], object]) -> None:
        """Run one restore step, converting any failure into RestoreError."""
        logger.info(banner)
        try:
            action()
        except click.Abort as e:
            raise RestoreError(f"Restore failed at step '{name}': aborted by operator") from e
        except (HomeServerError, OSError) as e:
            message = getattr(e, "message", None) or str(e)
            raise RestoreError(
                f"Restore failed at step '{name}': {message}",
                details=getattr(e, "details", None),
                suggestions=getattr(e, "suggestions", None),
            ) from e

    def restore_database(self, snapshot: Snapshot) -> None:
        """Start the database service alone, recreate the database and replay the dump."""
        self.compose.up([self.settings.database_service])
        logger.debug("Waiting %ss for the database to start", self.settings.restore_grace_seconds)
        self.sleep(self.settings.restore_grace_seconds)

        if not self.database.is_ready():
            logger.warning("Database is not reporting ready yet, continuing anyway")

        self.database.drop_database()
        self.database.create_database()
        self.database.replay(snapshot.artifact(DATABASE_DUMP))

    def _require_database_service(self) -> None:
        service = self.settings.database_service
        services = self.compose.list_services()
        # An unreadable compose file is left for docker compose to report
        if services and service not in services:
            raise DockerError(
                f"Service '{service}' is not defined in {self.settings.compose_file}",
                suggestions=create_error_suggestions("service_not_defined", service=service),
            )

    def restore_uploads(self, snapshot: Snapshot) -> None:
        """Replace the upload tree with the archived one."""
        upload_dir = self.settings.upload_dir
        self.file_manager.remove_tree(upload_dir)
        os.makedirs(upload_dir, exist_ok=True)
        self.archiver.extract(snapshot.artifact(UPLOAD_ARCHIVE), self.settings.immich_root)
        self.file_manager.chown_tree(upload_dir, self.settings.upload_owner_uid, self.settings.upload_owner_gid)

    def restore_volume(self, snapshot: Snapshot) -> None:
        """Clear the named volume and unpack the archive into it."""
        self.containers.run_disposable(
            self.settings.helper_image,
            ["sh", "-c", f"rm -rf /data/* && tar -xzf /backup/{VOLUME_ARCHIVE} -C /data"],
            volumes={
                self.settings.volume_name: {"bind": "/data", "mode": "rw"},
                snapshot.path: {"bind": "/backup", "mode": "ro"},
            },
        )

    def restore_secrets(self, snapshot: Snapshot) -> None:
        """Decrypt the secrets archive over the configuration directory."""
        passphrase = self.passphrase_provider()
        if not passphrase:
            raise RestoreError("No decryption passphrase given")

        self.cipher.decrypt_tree(snapshot.artifact(SECRETS_ARCHIVE), self.settings.config_dir, passphrase)
