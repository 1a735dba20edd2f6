"""
Google Cloud Storage backend.

Objects are stored under {prefix}/{file_name} with the backup type and
creation timestamp as custom metadata.
"""

import os
import logging
from typing import List, Optional

from google.cloud import storage as gcs_storage

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


class GCSStorage:
    """Handler for storing backups in a Google Cloud Storage bucket."""

    provider = 'Google Cloud Storage'

    def __init__(self, bucket_name: str, prefix: str = '', key_file_path: Optional[str] = None,
                 timeout: int = 300):
        """
        Initialize GCS storage handler.

        Args:
            bucket_name: GCS bucket name
            prefix: Object name prefix
            key_file_path: Service account JSON key; application default
                credentials are used when omitted
            timeout: Timeout in seconds for each call

        Raises:
            ConfigurationError: If the bucket is missing or no credentials are available
        """
        if not bucket_name:
            raise ConfigurationError("GCS bucket name is required")

        self.bucket_name = bucket_name
        self.prefix = prefix or ''
        self.timeout = timeout

        try:
            if key_file_path:
                self.client = gcs_storage.Client.from_service_account_json(key_file_path)
            else:
                self.client = gcs_storage.Client()
            self.bucket = self.client.bucket(bucket_name)
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize GCS client: {e}")

    @classmethod
    def from_config(cls, config: BackupConfig) -> 'GCSStorage':
        gcs = config.storage.gcs
        return cls(
            bucket_name=gcs.bucket,
            prefix=gcs.prefix,
            key_file_path=gcs.key_file_path,
            timeout=config.storage.timeout
        )

    def get_object_name(self, file_name: str) -> str:
        return object_key(file_name, self.prefix)

    def upload(self, result: BackupResult) -> BackupResult:
        """
        Upload a backup to GCS.

        Returns:
            Result with remote_locator 'bucket/object', or a failed result
        """
        try:
            require_local_file(result)
            object_name = self.get_object_name(result.file_name)

            blob = self.bucket.blob(object_name)
            blob.metadata = upload_metadata(result)
            blob.upload_from_filename(
                result.local_path,
                content_type=CONTENT_TYPE,
                timeout=self.timeout
            )

            logger.info(f"Uploaded {result.file_name} to gs://{self.bucket_name}/{object_name}")
            return upload_succeeded(result, self.provider, f"{self.bucket_name}/{object_name}")

        except Exception as e:
            logger.error(f"Failed to upload {result.file_name} to GCS: {e}")
            return upload_failed(result, self.provider, e)

    def list_files(self) -> List[BackupFileMetadata]:
        """
        List backups stored under the prefix.

        Raises:
            StorageError: If listing fails
        """
        try:
            files = []
            blobs = self.client.list_blobs(
                self.bucket_name,
                prefix=listing_prefix(self.prefix),
                timeout=self.timeout
            )

            for blob in blobs:
                if not is_direct_child(blob.name, self.prefix):
                    continue

                file_name = os.path.basename(blob.name)
                files.append(BackupFileMetadata(
                    file_name=file_name,
                    remote_locator=f"{self.bucket_name}/{blob.name}",
                    size_bytes=int(blob.size or 0),
                    last_modified=as_utc(blob.updated) if blob.updated else utcnow(),
                    backup_type=resolve_backup_type(blob.metadata, file_name),
                    metadata=dict(blob.metadata) if blob.metadata else None,
                ))

            return files

        except Exception as e:
            raise StorageError(f"Failed to list GCS objects: {e}")

    def delete(self, file_name: str):
        """
        Delete a backup from GCS.

        Raises:
            StorageError: If deletion fails
        """
        object_name = self.get_object_name(file_name)
        try:
            self.bucket.blob(object_name).delete(timeout=self.timeout)
            logger.info(f"Deleted {file_name} from GCS")
        except Exception as e:
            raise StorageError(f"Failed to delete {object_name} from GCS: {e}")

    def exists(self, file_name: str) -> bool:
        """Check whether a backup exists; any error counts as missing."""
        try:
            return bool(self.bucket.blob(self.get_object_name(file_name)).exists(timeout=self.timeout))
        except Exception as e:
            logger.debug(f"GCS existence check of {file_name} failed: {e}")
            return False
