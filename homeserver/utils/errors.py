"""Error handling utilities for the home server backup tool."""

import sys
import traceback
from typing import Optional

import click


class HomeServerError(Exception):
    """Base exception for home server backup errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        super().__init__(message)


class ConfigurationError(HomeServerError):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigMissingError(ConfigurationError):
    """Raised when the configuration file does not exist."""

    pass


class ConfigFieldMissingError(ConfigurationError):
    """Raised when a required configuration field is absent, empty or null."""

    pass


class SnapshotNotFoundError(HomeServerError):
    """Raised when a snapshot directory cannot be found."""

    pass


class SnapshotExistsError(HomeServerError):
    """Raised when the snapshot directory for this run already exists."""

    pass


class PrivilegeError(HomeServerError):
    """Raised when the tool is not run with the required privileges."""

    pass


class DockerError(HomeServerError):
    """Raised when Docker operations fail."""

    pass


class DatabaseError(HomeServerError):
    """Raised when database operations fail."""

    pass


class ArchiveError(HomeServerError):
    """Raised when creating or extracting an archive fails."""

    pass


class SecurityError(HomeServerError):
    """Raised when encryption operations fail."""

    pass


class DecryptionError(SecurityError):
    """Raised when an encrypted archive cannot be decrypted."""

    pass


class LockError(HomeServerError):
    """Raised when another backup or restore run holds the lock."""

    pass


class RestoreError(HomeServerError):
    """Raised when a restore step fails."""

    pass


class ErrorHandler:
    """Handles and formats errors for user-friendly display."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Handle and display error with appropriate formatting.

        Args:
            error: Exception to handle
            context: Optional context about when/where error occurred
        """
        if isinstance(error, HomeServerError):
            self._handle_homeserver_error(error, context)
        else:
            self._handle_generic_error(error, context)

    def _handle_homeserver_error(self, error: HomeServerError, context: Optional[str]) -> None:
        """Handle tool-specific errors."""
        click.echo(f"✗ {error.message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if error.details:
            click.echo(f"Details: {error.details}", err=True)

        if error.suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in error.suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def _handle_generic_error(self, error: Exception, context: Optional[str]) -> None:
        """Handle generic Python exceptions."""
        error_type = type(error).__name__

        if isinstance(error, FileNotFoundError):
            message = f"File not found: {error}"
            suggestions = [
                "Check that the file path is correct",
                "Ensure the file exists and is readable",
            ]
        elif isinstance(error, PermissionError):
            message = f"Permission denied: {error}"
            suggestions = [
                "Check file/directory permissions",
                "Try running with sudo",
            ]
        else:
            message = f"{error_type}: {error}"
            suggestions = []

        click.echo(f"✗ {message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: int = 1) -> None:
        """Handle error and exit with specified code."""
        self.handle_error(error, context)
        sys.exit(exit_code)


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type.

    Args:
        error_type: Type of error
        **kwargs: Additional context information (config_file, path)

    Returns:
        list: List of suggestion strings
    """
    config_file = kwargs.get("config_file", "config.json")

    suggestions = {
        "config_missing": [
            "Run the deployment script first",
            f"Check that {config_file} exists",
        ],
        "config_field_missing": [
            f"Add an 'external_drive' entry to {config_file}",
            "Re-run the deployment script to regenerate the configuration",
        ],
        "not_root": [
            "Run the command with sudo",
        ],
        "docker_not_running": [
            "Start the Docker daemon (systemctl start docker)",
            "Check that Docker is installed and accessible",
        ],
        "snapshot_not_found": [
            "Run 'homeserver-backup list' to see available backups",
            "Pass the full path of the backup directory",
        ],
        "backup_locked": [
            "Wait for the running backup or restore to finish",
            f"Remove {kwargs.get('path', 'the lock file')} if no other run is active",
        ],
        "decryption_failed": [
            "Check the passphrase used when the backup was created",
        ],
        "service_not_defined": [
            f"Add a '{kwargs.get('service', 'database')}' service to docker-compose.yml",
            "Set backup.database_service in config.json to the database service name",
        ],
        "snapshot_exists": [
            "Wait a second and run the backup again",
            f"Remove {kwargs.get('path', 'the existing backup directory')} if it is a leftover",
        ],
    }

    return suggestions.get(error_type, [])


def format_validation_errors(errors: list) -> str:
    """
    Format validation errors for display.

    Args:
        errors: List of validation error messages

    Returns:
        str: Formatted error message
    """
    if not errors:
        return "No validation errors"

    if len(errors) == 1:
        return f"Validation error: {errors[0]}"

    formatted = "Validation errors:\n"
    for i, error in enumerate(errors, 1):
        formatted += f"  {i}. {error}\n"

    return formatted.strip()
