"""PostgreSQL access through the database container."""

import gzip
import logging
import os
import shutil
import subprocess
import tempfile
from typing import List

from homeserver.utils.errors import DatabaseError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class DatabaseClient:
    """Runs PostgreSQL client tools inside the database container via ``docker exec``."""

    def __init__(self, container: str, user: str, database: str, verbose: bool = False):
        """
        Initialize database client.

        Args:
            container: Name of the running PostgreSQL container
            user: Database superuser
            database: Database to dump and restore
            verbose: Enable verbose output
        """
        self.container = container
        self.user = user
        self.database = database
        self.verbose = verbose

    def _exec(self, *args: str, interactive: bool = False) -> List[str]:
        cmd = ["docker", "exec"]
        if interactive:
            cmd.append("-i")
        cmd.append(self.container)
        cmd.extend(args)
        return cmd

    def is_ready(self) -> bool:
        """
        Readiness probe: does the server accept connections?

        Returns:
            bool: True if pg_isready succeeds
        """
        try:
            result = subprocess.run(
                self._exec("pg_isready", "-U", self.user),
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("Readiness probe failed: %s", e)
            return False

        return result.returncode == 0

    def dump_to(self, output_path: str) -> str:
        """
        Stream a full logical dump through gzip -9 into output_path.

        A partial file is removed when the dump fails.

        Args:
            output_path: Destination .sql.gz

        Returns:
            str: Path to the compressed dump

        Raises:
            DatabaseError: If pg_dump fails
        """
        with tempfile.TemporaryFile() as stderr:
            try:
                process = subprocess.Popen(
                    self._exec("pg_dump", "-U", self.user, self.database),
                    stdout=subprocess.PIPE,
                    stderr=stderr,
                )
            except OSError as e:
                raise DatabaseError(f"Cannot run pg_dump: {e}") from e

            try:
                with gzip.open(output_path, "wb", compresslevel=9) as out:
                    shutil.copyfileobj(process.stdout, out, CHUNK_SIZE)
            finally:
                process.stdout.close()
                returncode = process.wait()

            if returncode != 0:
                stderr.seek(0)
                message = stderr.read().decode("utf-8", "replace").strip()
                if os.path.exists(output_path):
                    os.remove(output_path)
                raise DatabaseError(
                    f"pg_dump exited with status {returncode}",
                    details=message or None,
                )

        return output_path

    def execute(self, sql: str) -> None:
        """
        Run one SQL statement against the maintenance database.

        Args:
            sql: Statement to execute

        Raises:
            DatabaseError: If psql fails
        """
        try:
            result = subprocess.run(
                self._exec("psql", "-U", self.user, "-c", sql),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise DatabaseError(f"Cannot run psql: {e}") from e

        if result.returncode != 0:
            raise DatabaseError(f"SQL failed: {sql}", details=result.stderr.strip() or None)

    def drop_database(self) -> None:
        self.execute(f'DROP DATABASE IF EXISTS "{self.database}";')

    def create_database(self) -> None:
        self.execute(f'CREATE DATABASE "{self.database}";')

    def replay(self, dump_path: str) -> None:
        """
        Feed a gzip-compressed SQL dump into psql.

        Args:
            dump_path: Path to the .sql.gz dump

        Raises:
            DatabaseError: If psql fails or exits early
        """
        with tempfile.TemporaryFile() as stderr:
            try:
                process = subprocess.Popen(
                    self._exec("psql", "-U", self.user, self.database, interactive=True),
                    stdin=subprocess.PIPE,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr,
                )
            except OSError as e:
                raise DatabaseError(f"Cannot run psql: {e}") from e

            broken_pipe = False
            try:
                with gzip.open(dump_path, "rb") as src:
                    shutil.copyfileobj(src, process.stdin, CHUNK_SIZE)
            except BrokenPipeError:
                broken_pipe = True
            except (OSError, EOFError) as e:
                process.kill()
                process.wait()
                raise DatabaseError(f"Cannot read dump {dump_path}: {e}") from e
            finally:
                try:
                    process.stdin.close()
                except BrokenPipeError:
                    broken_pipe = True

            returncode = process.wait()
            if returncode != 0 or broken_pipe:
                stderr.seek(0)
                message = stderr.read().decode("utf-8", "replace").strip()
                raise DatabaseError(f"psql exited with status {returncode} while replaying the dump", details=message or None)
