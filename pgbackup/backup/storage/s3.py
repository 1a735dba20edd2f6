"""
S3 storage backend.

Works with AWS S3 and S3-compatible services (MinIO, Wasabi, ...) through a
custom endpoint. Objects are stored under {prefix}/{file_name}.
"""

import os
import logging
from typing import List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, BotoCoreError

from ...config import BackupConfig
from ...errors import ConfigurationError, StorageError
from ...models import BackupResult, BackupFileMetadata, as_utc, utcnow
from ..naming import type_from_name
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


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', 'Unknown')


class S3Storage:
    """Handler for storing backups in an S3 bucket."""

    provider = 'S3'

    def __init__(self, access_key: str, secret_key: str, bucket_name: str, region: str = 'us-east-1',
                 prefix: str = '', endpoint_url: Optional[str] = None, timeout: int = 300):
        """
        Initialize S3 storage handler.

        Args:
            access_key: AWS access key ID
            secret_key: AWS secret access key
            bucket_name: S3 bucket name
            region: AWS region (default: us-east-1)
            prefix: Key prefix for stored objects
            endpoint_url: Endpoint of an S3-compatible service
            timeout: Connect/read timeout in seconds for each call

        Raises:
            ConfigurationError: If bucket or credentials are missing
        """
        if not bucket_name:
            raise ConfigurationError("S3 bucket name is required")
        if not access_key or not secret_key:
            raise ConfigurationError("S3 access key ID and secret access key are required")

        self.bucket_name = bucket_name
        self.region = region
        self.prefix = prefix or ''

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                endpoint_url=endpoint_url,
                config=BotoConfig(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={'max_attempts': 3}
                )
            )
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize S3 client: {e}")

    @classmethod
    def from_config(cls, config: BackupConfig) -> 'S3Storage':
        s3 = config.storage.s3
        return cls(
            access_key=s3.access_key_id,
            secret_key=s3.secret_access_key,
            bucket_name=s3.bucket,
            region=s3.region,
            prefix=s3.prefix,
            endpoint_url=s3.endpoint,
            timeout=config.storage.timeout
        )

    def get_object_key(self, file_name: str) -> str:
        return object_key(file_name, self.prefix)

    def upload(self, result: BackupResult) -> BackupResult:
        """
        Upload a backup to S3.

        Large files are sent as multipart uploads by boto3's transfer manager.

        Args:
            result: Result of a dump or WAL copy referencing a local file

        Returns:
            Result with remote_locator 'bucket/key', or a failed result
        """
        try:
            require_local_file(result)
            key = self.get_object_key(result.file_name)

            self.s3_client.upload_file(
                result.local_path,
                self.bucket_name,
                key,
                ExtraArgs={
                    'ContentType': CONTENT_TYPE,
                    'Metadata': upload_metadata(result, type_key='backup-type')
                }
            )

            logger.info(f"Uploaded {result.file_name} to s3://{self.bucket_name}/{key}")
            return upload_succeeded(result, self.provider, f"{self.bucket_name}/{key}")

        except ClientError as e:
            logger.error(f"S3 upload of {result.file_name} failed ({_error_code(e)}): {e}")
            return upload_failed(result, self.provider, e)
        except Exception as e:
            logger.error(f"Failed to upload {result.file_name} to S3: {e}")
            return upload_failed(result, self.provider, e)

    def list_files(self) -> List[BackupFileMetadata]:
        """
        List backups stored under the prefix.

        S3 listings carry no user metadata, so the backup type is parsed
        from the file name.

        Raises:
            StorageError: If listing fails
        """
        try:
            files = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=listing_prefix(self.prefix)):
                for obj in page.get('Contents', []):
                    key = obj['Key']
                    if not is_direct_child(key, self.prefix):
                        continue

                    file_name = os.path.basename(key)
                    last_modified = obj.get('LastModified')
                    files.append(BackupFileMetadata(
                        file_name=file_name,
                        remote_locator=f"{self.bucket_name}/{key}",
                        size_bytes=obj.get('Size', 0),
                        last_modified=as_utc(last_modified) if last_modified else utcnow(),
                        backup_type=type_from_name(file_name),
                    ))

            return files

        except ClientError as e:
            raise StorageError(f"S3 list failed ({_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 list failed: {e}")
        except Exception as e:
            raise StorageError(f"Failed to list S3 objects: {e}")

    def delete(self, file_name: str):
        """
        Delete a backup from S3.

        Raises:
            StorageError: If deletion fails
        """
        key = self.get_object_key(file_name)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
            logger.info(f"Deleted {file_name} from S3")
        except ClientError as e:
            raise StorageError(f"S3 delete of {key} failed ({_error_code(e)}): {e}")
        except Exception as e:
            raise StorageError(f"Failed to delete {key} from S3: {e}")

    def exists(self, file_name: str) -> bool:
        """Check whether a backup exists; any error counts as missing."""
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=self.get_object_key(file_name))
            return True
        except Exception as e:
            logger.debug(f"S3 head of {file_name} failed: {e}")
            return False

    def test_connection(self) -> bool:
        """
        Test S3 connection and bucket access.

        Returns:
            True if connection is successful

        Raises:
            StorageError: If connection test fails
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            error_code = _error_code(e)
            if error_code == '404':
                raise StorageError(f"Bucket does not exist: {self.bucket_name}")
            elif error_code == '403':
                raise StorageError(f"Access denied to bucket: {self.bucket_name}")
            else:
                raise StorageError(f"S3 connection test failed ({error_code}): {e}")
        except Exception as e:
            raise StorageError(f"Failed to connect to S3: {e}")
