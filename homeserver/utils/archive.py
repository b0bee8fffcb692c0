"""Compressed tar archives for backup artifacts."""

import io
import logging
import os
import tarfile
from typing import IO, List

from homeserver.utils.errors import ArchiveError

logger = logging.getLogger(__name__)


class Archiver:
    """Creates and extracts gzip-compressed tar archives."""

    def __init__(self, compresslevel: int = 6, verbose: bool = False):
        """
        Initialize archiver.

        Args:
            compresslevel: gzip compression level (1-9)
            verbose: Enable verbose output
        """
        self.compresslevel = compresslevel
        self.verbose = verbose

    def create(self, parent_dir: str, member: str, output_path: str) -> List[str]:
        """
        Archive ``parent_dir/member`` so it extracts as ``member/...``.

        Unreadable files inside the tree are logged and skipped.

        Args:
            parent_dir: Directory the archive is rooted at
            member: Name of the file or directory inside parent_dir to archive
            output_path: Path of the .tar.gz to write

        Returns:
            List[str]: Paths that were skipped

        Raises:
            ArchiveError: If the archive itself cannot be written
        """
        try:
            with tarfile.open(output_path, "w:gz", compresslevel=self.compresslevel) as tar:
                return self._add_tree(tar, parent_dir, member)
        except (OSError, tarfile.TarError) as e:
            raise ArchiveError(f"Failed to create archive {output_path}: {e}") from e

    def create_bytes(self, parent_dir: str, member: str) -> bytes:
        """
        Archive ``parent_dir/member`` into memory.

        Args:
            parent_dir: Directory the archive is rooted at
            member: Name of the file or directory to archive

        Returns:
            bytes: The .tar.gz content
        """
        buffer = io.BytesIO()
        try:
            with tarfile.open(fileobj=buffer, mode="w:gz", compresslevel=self.compresslevel) as tar:
                skipped = self._add_tree(tar, parent_dir, member)
        except (OSError, tarfile.TarError) as e:
            raise ArchiveError(f"Failed to archive {os.path.join(parent_dir, member)}: {e}") from e

        if skipped:
            raise ArchiveError(
                f"Could not read {len(skipped)} file(s) under {os.path.join(parent_dir, member)}",
                details=", ".join(skipped),
            )
        return buffer.getvalue()

    def extract(self, archive_path: str, destination: str) -> None:
        """
        Extract a .tar.gz archive into destination.

        Args:
            archive_path: Archive to extract
            destination: Target directory (created if missing)

        Raises:
            ArchiveError: If the archive is unreadable or contains unsafe paths
        """
        try:
            with tarfile.open(archive_path, "r:gz") as tar:
                self._extract_all(tar, destination)
        except (OSError, EOFError, tarfile.TarError) as e:
            raise ArchiveError(f"Failed to extract {archive_path}: {e}") from e

    def extract_bytes(self, data: bytes, destination: str) -> None:
        """Extract an in-memory .tar.gz into destination."""
        self.extract_fileobj(io.BytesIO(data), destination)

    def extract_fileobj(self, fileobj: IO[bytes], destination: str) -> None:
        """Extract a .tar.gz read from an open binary file object."""
        try:
            with tarfile.open(fileobj=fileobj, mode="r:gz") as tar:
                self._extract_all(tar, destination)
        except (OSError, EOFError, tarfile.TarError) as e:
            raise ArchiveError(f"Failed to extract archive: {e}") from e

    def _add_tree(self, tar: tarfile.TarFile, parent_dir: str, member: str) -> List[str]:
        root = os.path.join(parent_dir, member)
        if not os.path.lexists(root):
            raise ArchiveError(f"Path not found: {root}")

        skipped = []
        tar.add(root, arcname=member, recursive=False)

        for current, dirs, files in os.walk(root, onerror=lambda e: skipped.append(e.filename)):
            dirs.sort()
            for name in dirs + sorted(files):
                path = os.path.join(current, name)
                arcname = os.path.join(member, os.path.relpath(path, root))
                try:
                    tar.add(path, arcname=arcname, recursive=False)
                except OSError as e:
                    logger.warning("Skipping unreadable file %s: %s", path, e.strerror or e)
                    skipped.append(path)

        return skipped

    def _extract_all(self, tar: tarfile.TarFile, destination: str) -> None:
        os.makedirs(destination, exist_ok=True)
        base = os.path.realpath(destination)

        members = tar.getmembers()
        for member in members:
            target = os.path.realpath(os.path.join(base, member.name))
            if os.path.commonpath([base, target]) != base:
                raise ArchiveError(f"Refusing to extract '{member.name}' outside {destination}")

        if hasattr(tarfile, "tar_filter"):
            tar.extractall(base, members=members, filter="tar")
        else:
            tar.extractall(base, members=members)

