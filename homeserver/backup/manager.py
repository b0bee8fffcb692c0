"""Snapshot production for home server backups."""

import logging
import os
import socket
from datetime import datetime
from typing import Callable, List, Optional

from jinja2 import Environment, FileSystemLoader

from homeserver.config.settings import Settings
from homeserver.containers.compose import ComposeManager
from homeserver.containers.manager import ContainerManager
from homeserver.secrets.cipher import SecretsCipher
from homeserver.secrets.passphrase import obtain_passphrase
from homeserver.utils.archive import Archiver
from homeserver.utils.errors import HomeServerError, PrivilegeError, SnapshotExistsError, create_error_suggestions
from homeserver.utils.files import FileManager, human_size
from homeserver.utils.logging import log_success, print_header

from .database import DatabaseClient
from .lock import BackupLock
from .models import (
    COMPOSE_COPY,
    CONFIG_COPY,
    DATABASE_DUMP,
    MANIFEST,
    SECRETS_ARCHIVE,
    TUNNEL_COPY,
    UPLOAD_ARCHIVE,
    VOLUME_ARCHIVE,
    BackupReport,
    Snapshot,
    StepResult,
    snapshot_name,
)
from .storage import BackupStorage

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")


class BackupManager:
    """
    Produces one timestamped snapshot of the home server stack.

    Every step returns a StepResult; a failing step is logged and the run
    moves on to the next one, so a partial snapshot is still written.
    """

    def __init__(
        self,
        settings: Settings,
        containers: Optional[ContainerManager] = None,
        compose: Optional[ComposeManager] = None,
        database: Optional[DatabaseClient] = None,
        archiver: Optional[Archiver] = None,
        cipher: Optional[SecretsCipher] = None,
        storage: Optional[BackupStorage] = None,
        passphrase_provider: Optional[Callable[[], Optional[str]]] = None,
        verbose: bool = False,
    ):
        """
        Initialize backup manager.

        Args:
            settings: Resolved settings for this run
            containers: Docker SDK wrapper (volumes, helper containers)
            compose: Compose orchestrator for the service stack
            database: Client for the PostgreSQL container
            archiver: Archiver used for the upload tree
            cipher: Cipher used for the secrets directory
            storage: Snapshot storage and rotation
            passphrase_provider: Callable returning the secrets passphrase
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
        self.storage = storage or BackupStorage(settings.backups_root, verbose=verbose)
        self.file_manager = FileManager(verbose=verbose)
        self.passphrase_provider = passphrase_provider or self._prompt_passphrase

        self.jinja_env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def _prompt_passphrase(self) -> Optional[str]:
        return obtain_passphrase(
            "Enter passphrase for secrets encryption",
            confirm=True,
            non_interactive=self.settings.non_interactive,
        )

    def create_snapshot_dir(self, now: Optional[datetime] = None) -> Snapshot:
        """
        Create the snapshot directory for this run.

        Args:
            now: Timestamp to name the snapshot after (defaults to the current time)

        Returns:
            Snapshot: The new, empty snapshot

        Raises:
            SnapshotExistsError: If a snapshot with the same timestamp exists
        """
        path = os.path.join(self.settings.backups_root, snapshot_name(now or datetime.now()))
        try:
            os.makedirs(path)
        except FileExistsError as e:
            raise SnapshotExistsError(
                f"Backup directory already exists: {path}",
                suggestions=create_error_suggestions("snapshot_exists", path=path),
            ) from e
        os.chmod(path, 0o755)
        logger.info("Backup directory: %s", path)
        return Snapshot(path=path)

    def _run_step(self, name: str, step: Callable[[], StepResult]) -> StepResult:
        """Run one step, turning an error into a failed result."""
        try:
            return step()
        except (HomeServerError, OSError) as e:
            message = getattr(e, "message", None) or str(e)
            logger.error("%s backup failed: %s", name.capitalize(), message)
            details = getattr(e, "details", None)
            if details:
                logger.debug("%s", details)
            return StepResult.failed(name, message)

    def backup_database(self, snapshot: Snapshot) -> StepResult:
        """Dump the PostgreSQL database into the snapshot."""
        print_header("Backing Up PostgreSQL Database")

        def step() -> StepResult:
            if not self.database.is_ready():
                logger.error("PostgreSQL is not running or not accessible")
                return StepResult.failed("database", "PostgreSQL is not running or not accessible")

            logger.info("Dumping %s database...", self.settings.database_name)
            output_path = self.database.dump_to(snapshot.artifact(DATABASE_DUMP))
            size = human_size(self.file_manager.path_size(output_path))
            log_success(logger, "Database backed up (%s)", size)
            return StepResult.success("database", size, [output_path])

        return self._run_step("database", step)

    def backup_uploads(self, snapshot: Snapshot) -> StepResult:
        """Archive the photo upload tree into the snapshot."""
        print_header("Backing Up Immich Photos")

        def step() -> StepResult:
            upload_dir = self.settings.upload_dir
            if not os.path.isdir(upload_dir):
                logger.warning("No uploads found at %s", upload_dir)
                return StepResult.skipped("uploads", f"No uploads found at {upload_dir}")

            logger.info("Upload directory size: %s", human_size(self.file_manager.path_size(upload_dir)))
            logger.info("Creating compressed archive (this may take a while)...")

            output_path = snapshot.artifact(UPLOAD_ARCHIVE)
            skipped = self.archiver.create(self.settings.immich_root, os.path.basename(upload_dir), output_path)
            size = human_size(self.file_manager.path_size(output_path))

            if skipped:
                logger.warning("Some files may have been skipped during backup (%d unreadable)", len(skipped))
                log_success(logger, "Photos backed up (%s)", size)
                return StepResult.success("uploads", f"{size}, {len(skipped)} files skipped", [output_path])

            log_success(logger, "Photos backed up (%s)", size)
            return StepResult.success("uploads", size, [output_path])

        return self._run_step("uploads", step)

    def backup_volumes(self, snapshot: Snapshot) -> StepResult:
        """Export the named Docker volume through a disposable helper container."""
        print_header("Backing Up Docker Volumes")

        def step() -> StepResult:
            volume = self.settings.volume_name
            if not self.containers.ping():
                logger.error("Docker daemon is not reachable")
                return StepResult.failed("volumes", "Docker daemon is not reachable")

            if not self.containers.volume_exists(volume):
                logger.warning("Volume %s not found", volume)
                return StepResult.skipped("volumes", f"Volume {volume} not found")

            logger.info("Backing up %s volume...", volume)
            self.containers.run_disposable(
                self.settings.helper_image,
                ["tar", "-czf", f"/backup/{VOLUME_ARCHIVE}", "-C", "/data", "."],
                volumes={
                    volume: {"bind": "/data", "mode": "ro"},
                    snapshot.path: {"bind": "/backup", "mode": "rw"},
                },
            )
            output_path = snapshot.artifact(VOLUME_ARCHIVE)
            log_success(logger, "Volume %s backed up", volume)
            return StepResult.success("volumes", volume, [output_path])

        return self._run_step("volumes", step)

    def backup_configurations(self, snapshot: Snapshot) -> List[StepResult]:
        """
        Copy configuration files and encrypt the secrets directory.

        Args:
            snapshot: Snapshot being produced

        Returns:
            List[StepResult]: One result each for config, compose, secrets and tunnel credentials
        """
        print_header("Backing Up Configurations")

        results = [
            self._run_step("config", lambda: self._copy_file(self.settings.config_file, snapshot, CONFIG_COPY, "config")),
            self._run_step(
                "compose", lambda: self._copy_file(self.settings.compose_file, snapshot, COMPOSE_COPY, "compose")
            ),
            self._run_step("secrets", lambda: self._encrypt_secrets(snapshot)),
            self._run_step("tunnel", lambda: self._copy_tunnel_credentials(snapshot)),
        ]

        log_success(logger, "Configurations backed up")
        return results

    def _copy_file(self, source: str, snapshot: Snapshot, filename: str, step: str) -> StepResult:
        if not os.path.isfile(source):
            logger.warning("%s not found, skipping", source)
            return StepResult.skipped(step, f"{source} not found")

        output_path = self.file_manager.copy_file(source, snapshot.artifact(filename))
        logger.info("Copied %s", source)
        return StepResult.success(step, filename, [output_path])

    def _encrypt_secrets(self, snapshot: Snapshot) -> StepResult:
        secrets_dir = self.settings.secrets_dir
        if not os.path.isdir(secrets_dir):
            logger.warning("Secrets directory %s not found, skipping", secrets_dir)
            return StepResult.skipped("secrets", f"{secrets_dir} not found")

        logger.info("Encrypting secrets...")
        passphrase = self.passphrase_provider()
        if not passphrase:
            logger.error("No passphrase given, secrets were not backed up")
            return StepResult.failed("secrets", "No passphrase given")

        output_path = self.cipher.encrypt_tree(
            os.path.dirname(secrets_dir),
            os.path.basename(secrets_dir),
            snapshot.artifact(SECRETS_ARCHIVE),
            passphrase,
        )
        log_success(logger, "Secrets encrypted")
        return StepResult.success("secrets", SECRETS_ARCHIVE, [output_path])

    def _copy_tunnel_credentials(self, snapshot: Snapshot) -> StepResult:
        source = self.settings.tunnel_credentials_dir
        if not os.path.isdir(source):
            return StepResult.skipped("tunnel", f"{source} not found")

        output_path = snapshot.artifact(TUNNEL_COPY)
        failed = self.file_manager.copy_tree(source, output_path)
        if failed:
            logger.warning("Tunnel credentials partially copied (%d files failed)", len(failed))
            return StepResult.failed("tunnel", f"{len(failed)} files could not be copied")

        logger.info("Copied tunnel credentials")
        return StepResult.success("tunnel", TUNNEL_COPY, [output_path])

    def render_manifest(self, snapshot: Snapshot, steps: List[StepResult], now: Optional[datetime] = None) -> str:
        """
        Render the manifest text for a snapshot.

        Args:
            snapshot: Snapshot to describe
            steps: Step results of this run
            now: Creation time to report

        Returns:
            str: Manifest contents
        """
        try:
            disk = self.file_manager.disk_usage(self.settings.storage_root)
        except OSError as e:
            logger.debug("Cannot read disk usage of %s: %s", self.settings.storage_root, e)
            disk = None

        template = self.jinja_env.get_template("manifest.txt.j2")
        return template.render(
            created=(now or datetime.now()).strftime("%a %b %d %H:%M:%S %Y"),
            hostname=socket.gethostname(),
            storage_root=self.settings.storage_root,
            entries=self.file_manager.list_entries(snapshot.path),
            steps=steps,
            containers=self.containers.describe_running(),
            disk=disk,
        )

    def create_manifest(self, snapshot: Snapshot, steps: List[StepResult], now: Optional[datetime] = None) -> StepResult:
        """Write manifest.txt into the snapshot."""

        def step() -> StepResult:
            output_path = snapshot.artifact(MANIFEST)
            content = self.render_manifest(snapshot, steps, now)
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(content)
            logger.debug("Manifest written to %s", output_path)
            return StepResult.success("manifest", MANIFEST, [output_path])

        return self._run_step("manifest", step)

    def perform_backup(self, now: Optional[datetime] = None, require_root: bool = True) -> BackupReport:
        """
        Produce a snapshot and rotate old ones.

        Args:
            now: Timestamp for the snapshot name
            require_root: Refuse to run unless the effective user is root

        Returns:
            BackupReport: Snapshot, step results, total size and rotation outcome

        Raises:
            PrivilegeError: If require_root is set and the user is not root
            LockError: If another run holds the backup lock
            SnapshotExistsError: If a snapshot with the same timestamp exists
        """
        if require_root and os.geteuid() != 0:
            raise PrivilegeError(
                "This command must be run as root",
                suggestions=create_error_suggestions("not_root"),
            )

        now = now or datetime.now()

        with BackupLock(self.settings.backups_root):
            print_header("Home Server Backup")
            snapshot = self.create_snapshot_dir(now)

            steps = [
                self.backup_database(snapshot),
                self.backup_uploads(snapshot),
                self.backup_volumes(snapshot),
            ]
            steps.extend(self.backup_configurations(snapshot))
            steps.append(self.create_manifest(snapshot, steps, now))

            report = BackupReport(snapshot=snapshot, steps=steps)
            report.total_size = human_size(self.file_manager.path_size(snapshot.path))

            print_header("Backup Summary")
            logger.info("Backup location: %s", snapshot.path)
            logger.info("Total size: %s", report.total_size)
            logger.info("Timestamp: %s", snapshot.name)
            for failed in report.failed_steps:
                logger.warning("Step '%s' failed: %s", failed.step, failed.message)

            print_header("Rotating Old Backups")
            report.rotation = self.storage.rotate(self.settings.retention)

        log_success(logger, "Backup complete!")
        return report
