"""
Storage backends for backup artifacts.

Supports:
- LocalStorage: Store in a local directory
- S3Storage: Upload to AWS S3 or an S3-compatible service
- GCSStorage: Upload to Google Cloud Storage
- AzureStorage: Upload to Azure Blob Storage
"""

from ...config import BackupConfig
from ...errors import ConfigurationError, StorageError
from .base import StorageBackend, object_key
from .local import LocalStorage
from .s3 import S3Storage
from .gcs import GCSStorage
from .azure_blob import AzureStorage


BACKENDS = {
    'local': LocalStorage,
    's3': S3Storage,
    'gcs': GCSStorage,
    'azure': AzureStorage,
}


def create_storage(config: BackupConfig) -> StorageBackend:
    """
    Create the storage backend selected by ``storage.provider``.

    Raises:
        ConfigurationError: If the provider is unknown or its settings are incomplete
    """
    provider = config.storage.provider
    backend_class = BACKENDS.get(provider)
    if backend_class is None:
        raise ConfigurationError(
            f"Invalid storage provider: {provider}. Valid options: {list(BACKENDS.keys())}"
        )
    return backend_class.from_config(config)


__all__ = [
    'StorageBackend',
    'StorageError',
    'LocalStorage',
    'S3Storage',
    'GCSStorage',
    'AzureStorage',
    'BACKENDS',
    'create_storage',
    'object_key',
]
