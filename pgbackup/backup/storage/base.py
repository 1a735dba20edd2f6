"""
Shared storage backend contract and helpers.

Every backend exposes the same four operations:

- upload(result): never raises; returns the result enriched with
  remote_locator on success, or a failed copy of it
- list_files(): raises StorageError when the listing cannot be obtained
- delete(file_name): raises StorageError on failure
- exists(file_name): returns False when existence cannot be determined
"""

import os
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from ...errors import StorageError
from ...models import BackupResult, BackupFileMetadata


CONTENT_TYPE = 'application/octet-stream'


class StorageBackend(Protocol):
    """Capability set shared by all storage providers."""

    def upload(self, result: BackupResult) -> BackupResult:
        ...

    def list_files(self) -> List[BackupFileMetadata]:
        ...

    def delete(self, file_name: str) -> None:
        ...

    def exists(self, file_name: str) -> bool:
        ...


def object_key(file_name: str, prefix: Optional[str] = None) -> str:
    """
    Build the object key / blob name for a file.

    Used by the S3, GCS and Azure backends so that artifacts of one backup
    always land under the same key on every provider.

    Args:
        file_name: Base file name of the artifact
        prefix: Optional path prefix

    Returns:
        prefix + '/' + file_name with exactly one separator, or file_name
    """
    if not prefix:
        return file_name
    return f"{prefix}{'' if prefix.endswith('/') else '/'}{file_name}"


def listing_prefix(prefix: Optional[str]) -> str:
    """Prefix to list with, so that 'database' does not also match 'database_old/'."""
    return object_key('', prefix)


def is_direct_child(name: str, prefix: Optional[str]) -> bool:
    """
    Whether a listed key sits directly under the prefix.

    Only such keys can be addressed again by file name through object_key,
    so nested keys and directory markers are left out of listings.
    """
    if not name or name.endswith('/'):
        return False
    return object_key(os.path.basename(name), prefix) == name


def upload_metadata(result: BackupResult, type_key: str = 'backup_type') -> Dict[str, str]:
    """
    Object metadata written alongside an upload.

    S3 user metadata travels as x-amz-meta-* headers, so S3 passes a
    hyphenated type_key; Azure metadata names must be valid identifiers.
    """
    return {
        type_key: result.backup_type.value,
        'timestamp': result.created_at.isoformat(),
    }


def require_local_file(result: BackupResult):
    """
    Raises:
        StorageError: If the result does not reference an existing local file
    """
    if not result.file_name or not result.local_path:
        raise StorageError("Backup result has no local file to upload")
    if not os.path.isfile(result.local_path):
        raise StorageError(f"Local file not found: {result.local_path}")


def upload_succeeded(result: BackupResult, provider: str, locator: str) -> BackupResult:
    return replace(
        result,
        success=True,
        remote_locator=locator,
        error=None,
        message=f"Successfully uploaded {result.file_name} to {provider}: {locator}"
    )


def upload_failed(result: BackupResult, provider: str, error: BaseException) -> BackupResult:
    return replace(
        result,
        success=False,
        error=error,
        message=f"Failed to upload {result.file_name or result.local_path} to {provider}: {error}"
    )
