"""Main CLI entry point for the home server backup tool.

Backs up the Immich database and photo library, the Portainer volume and
the deployment configuration of a home server onto its external drive,
rotates old snapshots by daily, weekly and monthly retention, and restores
a chosen snapshot.
"""

import logging
from dataclasses import replace
from typing import Optional

import click

from homeserver import __version__
from homeserver.utils.errors import ErrorHandler
from homeserver.utils.logging import print_header, setup_logging

logger = logging.getLogger(__name__)


def _load_settings(ctx: click.Context, **overrides):
    """Read the configuration file once and build the Settings for this run."""
    from homeserver.config import ConfigManager

    config_manager = ConfigManager(ctx.obj["config_dir"])
    return config_manager.load_settings(non_interactive=ctx.obj["yes"] or None, **overrides)


def _retention(settings, daily: Optional[int], weekly: Optional[int], monthly: Optional[int]):
    """Apply command line retention overrides to the configured policy."""
    counts = {"daily": daily, "weekly": weekly, "monthly": monthly}
    return replace(settings.retention, **{name: value for name, value in counts.items() if value is not None})


@click.group(invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option(
    "--config-dir",
    envvar="HOMESERVER_CONFIG_DIR",
    metavar="<PATH>",
    help="Directory holding config.json (default: /opt/home-server)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--log-file", help="Log to file in addition to console")
@click.option("--yes", "-y", is_flag=True, help="Never prompt; assume yes and read the passphrase from the environment")
@click.pass_context
def cli(
    ctx: click.Context, config_dir: Optional[str], verbose: bool, log_file: Optional[str], yes: bool
) -> None:
    """Home server backup - snapshot, rotate and restore the home server stack.

    Runs a backup when no command is given.

    Args:
        ctx: Click context object containing shared state
        config_dir: Directory holding config.json
        verbose: Enable verbose output for detailed logging
        log_file: Optional path to log file for additional logging
        yes: Run without interactive prompts
    """
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir
    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file
    ctx.obj["yes"] = yes
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    # Setup logging
    setup_logging(verbose=verbose, log_file=log_file)

    if ctx.invoked_subcommand is None:
        ctx.invoke(backup)


@cli.command()
@click.option("--daily", type=click.IntRange(min=0), help="Daily snapshots to keep (overrides config)")
@click.option("--weekly", type=click.IntRange(min=0), help="Weekly snapshots to keep (overrides config)")
@click.option("--monthly", type=click.IntRange(min=0), help="Monthly snapshots to keep (overrides config)")
@click.pass_context
def backup(
    ctx: click.Context, daily: Optional[int] = None, weekly: Optional[int] = None, monthly: Optional[int] = None
) -> None:
    """Perform a full backup, then rotate old backups.

    Step failures are reported but do not fail the command; a partial
    backup is still kept.

    Args:
        ctx: Click context object
        daily: Override for daily retention
        weekly: Override for weekly retention
        monthly: Override for monthly retention
    """
    try:
        from homeserver.backup import BackupManager

        settings = _load_settings(ctx)
        settings = settings.with_overrides(retention=_retention(settings, daily, weekly, monthly))

        backup_manager = BackupManager(settings, verbose=ctx.obj["verbose"])
        report = backup_manager.perform_backup()

        if report.failed_steps:
            click.echo(f"\nBackup finished with {len(report.failed_steps)} failed step(s):")
            for step in report.failed_steps:
                click.echo(f"  ✗ {step.step}: {step.message}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Backup")


@cli.command()
@click.argument("path", type=click.Path())
@click.pass_context
def restore(ctx: click.Context, path: str) -> None:
    """Restore the system from the backup at PATH.

    Stops all services, restores every artifact present in the backup and
    starts the services again. Existing data is overwritten.

    Args:
        ctx: Click context object
        path: Backup directory to restore from
    """
    try:
        from homeserver.backup import RecoveryManager

        settings = _load_settings(ctx)
        recovery_manager = RecoveryManager(settings, verbose=ctx.obj["verbose"])
        result = recovery_manager.restore(path, confirm=not ctx.obj["yes"])

        if result.cancelled:
            return

        if ctx.obj["verbose"] and result.restored:
            click.echo(f"Restored: {', '.join(result.restored)}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Restore")


@cli.command(name="list")
@click.pass_context
def list_backups(ctx: click.Context) -> None:
    """List available backups, newest first.

    Args:
        ctx: Click context object
    """
    try:
        from homeserver.backup import BackupStorage

        settings = _load_settings(ctx)
        storage = BackupStorage(settings.backups_root, verbose=ctx.obj["verbose"])

        print_header("Available Backups")

        backups = storage.list_backups()
        if not backups:
            logger.warning("No backups found")
            return

        click.echo(f"Backup Location: {settings.backups_root}\n")
        click.echo(f"{'DATE':<20} {'TYPE':<10} {'SIZE':<15} PATH")
        click.echo("-" * 72)
        for entry in backups:
            click.echo(f"{entry['name']:<20} {entry['type']:<10} {entry['size']:<15} {entry['path']}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Listing backups")


@cli.command()
@click.option("--daily", type=click.IntRange(min=0), help="Daily snapshots to keep (overrides config)")
@click.option("--weekly", type=click.IntRange(min=0), help="Weekly snapshots to keep (overrides config)")
@click.option("--monthly", type=click.IntRange(min=0), help="Monthly snapshots to keep (overrides config)")
@click.pass_context
def rotate(ctx: click.Context, daily: Optional[int], weekly: Optional[int], monthly: Optional[int]) -> None:
    """Mark and prune old backups without creating a new one.

    Args:
        ctx: Click context object
        daily: Override for daily retention
        weekly: Override for weekly retention
        monthly: Override for monthly retention
    """
    try:
        from homeserver.backup import BackupLock, BackupStorage

        settings = _load_settings(ctx)
        retention = _retention(settings, daily, weekly, monthly)

        print_header("Rotating Old Backups")

        storage = BackupStorage(settings.backups_root, verbose=ctx.obj["verbose"])
        with BackupLock(settings.backups_root):
            result = storage.rotate(retention)

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Rotation")

    click.echo(f"\nKept {len(result.kept)} backup(s), removed {len(result.deleted)}")
    if result.failed:
        click.echo(f"✗ Could not remove: {', '.join(result.failed)}")
        ctx.exit(1)


if __name__ == "__main__":
    cli()
