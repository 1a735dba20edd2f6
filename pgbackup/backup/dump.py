"""
Database dump orchestration.

Runs pg_dump for full or schema-only backups, optionally piping the output
through gzip, and reports the outcome as a BackupResult. Failures never
escape as exceptions: the caller always gets a result back.
"""

import os
import logging
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from ..config import BackupConfig
from ..errors import DumpError
from ..models import BackupResult, BackupType, utcnow
from .naming import name_for


logger = logging.getLogger(__name__)

# Characters of stderr kept in error messages
STDERR_LIMIT = 500


class DumpOrchestrator:
    """
    Creates dump artifacts in the configured dump directory.

    Runs one pg_dump at a time and blocks until it exits. Overlapping runs
    against the same database must be serialized by the caller.
    """

    def __init__(self, config: BackupConfig):
        """
        Initialize dump orchestrator.

        Args:
            config: Backup configuration
        """
        self.config = config

    def create_full_backup(self) -> BackupResult:
        """Create a full database backup."""
        return self._create_backup(BackupType.FULL)

    def create_schema_backup(self) -> BackupResult:
        """Create a schema-only backup."""
        return self._create_backup(BackupType.SCHEMA)

    def build_dump_command(self, schema_only: bool = False) -> List[str]:
        """
        Build the pg_dump argument list.

        The password is not part of the command; it is passed through
        PGPASSWORD in the child environment.

        Args:
            schema_only: Whether to only dump schema (no data)

        Returns:
            pg_dump argument list
        """
        db = self.config.database
        command = [
            self.config.dump.pg_dump_path,
            '-h', db.host,
            '-p', str(db.port),
            '-U', db.username,
            '-d', db.name,
        ]

        if db.schema:
            command += ['-n', db.schema]

        if schema_only:
            command.append('--schema-only')

        # Plain text format
        command.append('-Fp')
        return command

    def build_compress_command(self) -> List[str]:
        """Build the compressor argument list."""
        level = self.config.storage.compression.level
        return [self.config.dump.compressor_path, f'-{level}']

    def local_path_for(self, file_name: str) -> str:
        return os.path.join(self.config.dump.directory, file_name)

    def _create_backup(self, backup_type: BackupType) -> BackupResult:
        timestamp = utcnow()
        local_path: Optional[str] = None

        try:
            file_name = name_for(
                self.config.database.name,
                backup_type,
                timestamp,
                self.config.storage.compression.enabled
            )
            local_path = self.local_path_for(file_name)

            # Ensure directory exists
            Path(local_path).parent.mkdir(parents=True, exist_ok=True)

            logger.info(f"Starting {backup_type.value} backup of {self.config.database.name}"
                        f"@{self.config.database.host}")
            self._run(local_path, schema_only=backup_type == BackupType.SCHEMA)

            size = os.path.getsize(local_path)
            logger.info(f"Dump complete: {file_name} ({size:,} bytes)")

            return BackupResult(
                success=True,
                backup_type=backup_type,
                file_name=file_name,
                local_path=local_path,
                size_bytes=size,
                created_at=timestamp,
                message=f"Successfully created {backup_type.value} backup: {file_name}"
            )

        except Exception as e:
            logger.error(f"Failed to create {backup_type.value} backup: {e}")
            self._remove_partial(local_path)
            return BackupResult(
                success=False,
                backup_type=backup_type,
                file_name='',
                local_path='',
                size_bytes=0,
                created_at=utcnow(),
                message=f"Failed to create {backup_type.value} backup: {e}",
                error=e
            )

    def _child_env(self) -> dict:
        env = os.environ.copy()
        env['PGPASSWORD'] = self.config.database.password
        return env

    def _run(self, output_path: str, schema_only: bool):
        """
        Run the dump (and compressor) writing to output_path.

        Raises:
            DumpError: If a process exits non-zero
            FileNotFoundError: If an executable is missing
            subprocess.TimeoutExpired: If the dump exceeds the configured timeout
        """
        dump_command = self.build_dump_command(schema_only)
        timeout = self.config.dump.timeout

        # stderr goes to temp files so a chatty process cannot fill a pipe and stall
        with open(output_path, 'wb') as output, \
                tempfile.TemporaryFile() as dump_stderr, \
                tempfile.TemporaryFile() as compress_stderr:

            if not self.config.storage.compression.enabled:
                dump = subprocess.Popen(dump_command, stdout=output, stderr=dump_stderr,
                                        env=self._child_env())
                self._wait(dump, timeout)
                self._check('pg_dump', dump, dump_stderr)
                return

            dump = subprocess.Popen(dump_command, stdout=subprocess.PIPE, stderr=dump_stderr,
                                    env=self._child_env())
            try:
                compressor = subprocess.Popen(self.build_compress_command(), stdin=dump.stdout,
                                              stdout=output, stderr=compress_stderr)
            except OSError:
                dump.kill()
                dump.wait()
                raise
            finally:
                # Only the compressor reads the pipe from here on
                dump.stdout.close()

            # One deadline covers the whole pipeline
            deadline = time.monotonic() + timeout
            try:
                self._wait(compressor, timeout)
                self._wait(dump, max(deadline - time.monotonic(), 0))
            except subprocess.TimeoutExpired:
                for process in (compressor, dump):
                    if process.poll() is None:
                        process.kill()
                        process.wait()
                raise

            self._check('pg_dump', dump, dump_stderr)
            self._check('compressor', compressor, compress_stderr)

    @staticmethod
    def _wait(process: subprocess.Popen, timeout: float):
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            raise

    @staticmethod
    def _check(name: str, process: subprocess.Popen, stderr_file):
        if process.returncode == 0:
            return
        stderr_file.seek(0)
        stderr = stderr_file.read().decode(errors='replace').strip()[:STDERR_LIMIT]
        detail = f": {stderr}" if stderr else ''
        raise DumpError(f"{name} exited with status {process.returncode}{detail}")

    @staticmethod
    def _remove_partial(local_path: Optional[str]):
        # Clean up partial artifact on failure
        if local_path and os.path.exists(local_path):
            try:
                os.remove(local_path)
            except OSError as e:
                logger.warning(f"Failed to remove partial dump {local_path}: {e}")
