"""File operations utilities for the home server backup tool."""

import logging
import os
import shutil
from typing import Dict, List

logger = logging.getLogger(__name__)


def human_size(num_bytes: float) -> str:
    """Format a byte count the way ``du -h`` does (1K, 4.2M, 1.5G)."""
    for unit in ("B", "K", "M", "G", "T"):
        if abs(num_bytes) < 1024 or unit == "T":
            if unit == "B":
                return f"{int(num_bytes)}B"
            return f"{num_bytes:.1f}{unit}" if num_bytes < 10 else f"{num_bytes:.0f}{unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.1f}T"


class FileManager:
    """Manages file operations for the backup tool."""

    def __init__(self, verbose: bool = False):
        """Initialize file manager."""
        self.verbose = verbose

    def path_size(self, path: str) -> int:
        """
        Get the size of a file or the recursive size of a directory.

        Unreadable entries are ignored.

        Args:
            path: File or directory path

        Returns:
            int: Size in bytes
        """
        if os.path.isfile(path):
            return os.path.getsize(path)

        total = 0
        for root, _dirs, files in os.walk(path):
            for name in files:
                try:
                    total += os.lstat(os.path.join(root, name)).st_size
                except OSError:
                    continue
        return total

    def list_entries(self, path: str) -> List[Dict[str, str]]:
        """
        List the entries of a directory with human readable sizes.

        Args:
            path: Directory path

        Returns:
            List[Dict[str, str]]: name/size/kind for every entry, sorted by name
        """
        entries = []
        for name in sorted(os.listdir(path)):
            full_path = os.path.join(path, name)
            entries.append(
                {
                    "name": name,
                    "size": human_size(self.path_size(full_path)),
                    "kind": "dir" if os.path.isdir(full_path) else "file",
                }
            )
        return entries

    def disk_usage(self, path: str) -> Dict[str, str]:
        """
        Get disk usage of the filesystem holding path.

        Args:
            path: Any path on the filesystem

        Returns:
            Dict[str, str]: total/used/free sizes and percentage used
        """
        usage = shutil.disk_usage(path)
        percent = (usage.used / usage.total * 100) if usage.total else 0
        return {
            "total": human_size(usage.total),
            "used": human_size(usage.used),
            "free": human_size(usage.free),
            "percent": f"{percent:.0f}%",
        }

    def copy_file(self, source: str, destination: str) -> str:
        """
        Copy a file verbatim, preserving metadata.

        Args:
            source: Source file path
            destination: Destination file path

        Returns:
            str: Path to the copied file
        """
        if not os.path.exists(source):
            raise FileNotFoundError(f"File not found: {source}")

        shutil.copy2(source, destination)

        if self.verbose:
            logger.debug("Copied %s -> %s", source, destination)

        return destination

    def copy_tree(self, source: str, destination: str) -> List[str]:
        """
        Copy a directory tree, skipping files that cannot be read.

        Args:
            source: Source directory
            destination: Destination directory (must not exist)

        Returns:
            List[str]: Paths that could not be copied
        """
        try:
            shutil.copytree(source, destination, symlinks=True)
        except shutil.Error as e:
            failed = [str(item[0]) for item in e.args[0]]
            for path in failed:
                logger.warning("Could not copy %s", path)
            return failed
        return []

    def chown_tree(self, path: str, uid: int, gid: int) -> None:
        """
        Recursively change ownership of a directory tree.

        Args:
            path: Root of the tree
            uid: Owner user id
            gid: Owner group id
        """
        os.chown(path, uid, gid)
        for root, dirs, files in os.walk(path):
            for name in dirs + files:
                os.lchown(os.path.join(root, name), uid, gid)

    def remove_tree(self, path: str) -> None:
        """Remove a directory tree if it exists."""
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.remove(path)
