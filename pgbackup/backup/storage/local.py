"""
Local filesystem storage backend.

The "remote" store is a plain directory: upload is a copy, listing a
directory scan, delete a file removal and exists a stat check.
"""

import os
import shutil
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from ...config import BackupConfig
from ...errors import ConfigurationError, StorageError
from ...models import BackupResult, BackupFileMetadata
from ..naming import type_from_name
from .base import require_local_file, upload_failed, upload_succeeded


logger = logging.getLogger(__name__)


class LocalStorage:
    """
    Handler for storing backups in a local directory.

    Files are stored flat under base_path by their file name.
    """

    provider = 'local storage'

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        Args:
            base_path: Directory holding stored backups

        Raises:
            ConfigurationError: If the directory cannot be created
        """
        self.base_path = Path(base_path)

        # Create base directory if it doesn't exist
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Failed to create local storage directory {base_path}: {e}")

    @classmethod
    def from_config(cls, config: BackupConfig) -> 'LocalStorage':
        return cls(config.storage.local.path)

    def upload(self, result: BackupResult) -> BackupResult:
        """
        Copy a backup into the storage directory.

        Args:
            result: Result of a dump or WAL copy referencing a local file

        Returns:
            Result with remote_locator set, or a failed result
        """
        try:
            require_local_file(result)
            dest_path = self.base_path / result.file_name
            source_path = Path(result.local_path)

            # Dumps may already be written into the storage directory
            if dest_path.exists() and os.path.samefile(source_path, dest_path):
                logger.debug(f"{result.file_name} already in {self.base_path}, nothing to copy")
            else:
                shutil.copy2(source_path, dest_path)

            locator = str(dest_path.resolve())
            logger.info(f"Stored {result.file_name} at {locator}")
            return upload_succeeded(result, self.provider, locator)

        except Exception as e:
            logger.error(f"Failed to store {result.file_name} locally: {e}")
            return upload_failed(result, self.provider, e)

    def list_files(self) -> List[BackupFileMetadata]:
        """
        List stored backup files.

        Returns:
            Metadata for every regular file directly in the storage directory

        Raises:
            StorageError: If the directory cannot be read
        """
        try:
            files = []
            for file_path in self.base_path.iterdir():
                if not file_path.is_file():
                    continue
                stat = file_path.stat()
                files.append(BackupFileMetadata(
                    file_name=file_path.name,
                    remote_locator=str(file_path.resolve()),
                    size_bytes=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    backup_type=type_from_name(file_path.name),
                ))
            return files

        except OSError as e:
            raise StorageError(f"Failed to list local files in {self.base_path}: {e}")

    def delete(self, file_name: str):
        """
        Delete a stored file. Missing files are ignored.

        Raises:
            StorageError: If deletion fails
        """
        full_path = self.base_path / file_name

        try:
            if full_path.exists():
                full_path.unlink()
                logger.info(f"Deleted {file_name} from local storage")
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete local file {full_path}: {e}")

    def exists(self, file_name: str) -> bool:
        try:
            return (self.base_path / file_name).is_file()
        except OSError:
            return False

    def get_full_path(self, file_name: str) -> str:
        """Full filesystem path of a stored file."""
        return str(self.base_path / file_name)
