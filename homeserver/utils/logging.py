"""Logging configuration for the home server backup tool."""

import logging
import sys
from typing import Optional

import click

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LEVEL_COLORS = {
    logging.DEBUG: "white",
    logging.INFO: "blue",
    SUCCESS: "green",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "red",
}


class ColorFormatter(logging.Formatter):
    """Formats records as ``[LEVEL] message`` with a colored level tag."""

    def __init__(self, color: bool = True):
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag = f"[{record.levelname}]"
        if self.color:
            tag = click.style(tag, fg=LEVEL_COLORS.get(record.levelno, "white"), bold=record.levelno == logging.WARNING)
        return f"{tag} {message}"


def log_success(logger: logging.Logger, message: str, *args) -> None:
    """Log a message at the SUCCESS level."""
    logger.log(SUCCESS, message, *args)


def print_header(title: str) -> None:
    """Print a section banner."""
    bar = "=" * 40
    click.secho(f"\n{bar}", fg="green")
    click.secho(f"  {title}", fg="green")
    click.secho(f"{bar}\n", fg="green")


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Setup logging configuration for the CLI.

    Args:
        verbose: Enable verbose/debug logging
        log_file: Optional log file path
    """
    level = logging.DEBUG if verbose else logging.INFO

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColorFormatter(color=sys.stdout.isatty()))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_file else level)
    for handler in list(root_logger.handlers):
        if getattr(handler, "_homeserver", False):
            root_logger.removeHandler(handler)
            handler.close()
    console_handler._homeserver = True
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        file_handler._homeserver = True
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
