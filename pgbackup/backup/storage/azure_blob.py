"""
Azure Blob Storage backend.

Blobs are stored under {prefix}/{file_name} in a container that is created
on first upload if it does not exist yet.
"""

import os
import logging
from typing import List

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from ...config import BackupConfig
from ...errors import ConfigurationError, StorageError
from ...models import BackupResult, BackupFileMetadata, as_utc, utcnow
from ..naming import resolve_backup_type
from .base import (
    CONTENT_TYPE,
    object_key,
    listing_prefix,
    is_direct_child,
    upload_metadata,
    require_local_file,
    upload_failed,
    upload_succeeded,
)


logger = logging.getLogger(__name__)


class AzureStorage:
    """Handler for storing backups in an Azure Blob Storage container."""

    provider = 'Azure Blob Storage'

    def __init__(self, connection_string: str, container_name: str, prefix: str = '', timeout: int = 300):
        """
        Initialize Azure storage handler.

        Args:
            connection_string: Storage account connection string
            container_name: Blob container name
            prefix: Blob name prefix
            timeout: Server timeout in seconds for each call

        Raises:
            ConfigurationError: If the connection string or container is missing or invalid
        """
        if not connection_string:
            raise ConfigurationError("Azure connection string is required")
        if not container_name:
            raise ConfigurationError("Azure container name is required")

        self.container_name = container_name
        self.prefix = prefix or ''
        self.timeout = timeout

        try:
            service_client = BlobServiceClient.from_connection_string(connection_string)
            self.container_client = service_client.get_container_client(container_name)
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize Azure Blob client: {e}")

    @classmethod
    def from_config(cls, config: BackupConfig) -> 'AzureStorage':
        azure = config.storage.azure
        return cls(
            connection_string=azure.connection_string,
            container_name=azure.container_name,
            prefix=azure.prefix,
            timeout=config.storage.timeout
        )

    def get_blob_name(self, file_name: str) -> str:
        return object_key(file_name, self.prefix)

    def upload(self, result: BackupResult) -> BackupResult:
        """
        Upload a backup to Azure Blob Storage.

        Returns:
            Result with remote_locator 'container/blob', or a failed result
        """
        try:
            require_local_file(result)
            self._ensure_container()
            blob_name = self.get_blob_name(result.file_name)
            blob_client = self.container_client.get_blob_client(blob_name)

            with open(result.local_path, 'rb') as data:
                blob_client.upload_blob(
                    data,
                    overwrite=True,
                    metadata=upload_metadata(result),
                    content_settings=ContentSettings(content_type=CONTENT_TYPE),
                    timeout=self.timeout
                )

            logger.info(f"Uploaded {result.file_name} to Azure container {self.container_name}/{blob_name}")
            return upload_succeeded(result, self.provider, f"{self.container_name}/{blob_name}")

        except Exception as e:
            logger.error(f"Failed to upload {result.file_name} to Azure Blob Storage: {e}")
            return upload_failed(result, self.provider, e)

    def list_files(self) -> List[BackupFileMetadata]:
        """
        List backups stored under the prefix.

        A container that does not exist yet holds no backups.

        Raises:
            StorageError: If listing fails
        """
        try:
            files = []
            blobs = self.container_client.list_blobs(
                name_starts_with=listing_prefix(self.prefix) or None,
                include=['metadata'],
                timeout=self.timeout
            )

            for blob in blobs:
                if not is_direct_child(blob.name, self.prefix):
                    continue

                file_name = os.path.basename(blob.name)
                files.append(BackupFileMetadata(
                    file_name=file_name,
                    remote_locator=f"{self.container_name}/{blob.name}",
                    size_bytes=int(blob.size or 0),
                    last_modified=as_utc(blob.last_modified) if blob.last_modified else utcnow(),
                    backup_type=resolve_backup_type(blob.metadata, file_name),
                    metadata=dict(blob.metadata) if blob.metadata else None,
                ))

            return files

        except ResourceNotFoundError:
            logger.info(f"Azure container {self.container_name} does not exist, nothing to list")
            return []
        except Exception as e:
            raise StorageError(f"Failed to list blobs from Azure Blob Storage: {e}")

    def delete(self, file_name: str):
        """
        Delete a backup from Azure Blob Storage.

        Raises:
            StorageError: If deletion fails
        """
        blob_name = self.get_blob_name(file_name)
        try:
            self.container_client.get_blob_client(blob_name).delete_blob(timeout=self.timeout)
            logger.info(f"Deleted {file_name} from Azure Blob Storage")
        except Exception as e:
            raise StorageError(f"Failed to delete {blob_name} from Azure Blob Storage: {e}")

    def exists(self, file_name: str) -> bool:
        """Check whether a backup exists; any error counts as missing."""
        try:
            blob_client = self.container_client.get_blob_client(self.get_blob_name(file_name))
            return bool(blob_client.exists(timeout=self.timeout))
        except Exception as e:
            logger.debug(f"Azure existence check of {file_name} failed: {e}")
            return False

    def _ensure_container(self):
        """Create the container if it doesn't exist."""
        if self.container_client.exists(timeout=self.timeout):
            return
        try:
            self.container_client.create_container(timeout=self.timeout)
            logger.info(f"Created container: {self.container_name}")
        except ResourceExistsError:
            # Created concurrently
            pass
