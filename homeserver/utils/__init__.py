"""Utilities for the home server backup tool."""

from .archive import Archiver
from .files import FileManager, human_size
from .logging import log_success, print_header, setup_logging

__all__ = ["Archiver", "FileManager", "human_size", "log_success", "print_header", "setup_logging"]
