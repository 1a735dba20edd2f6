"""Exception types shared across pgbackup."""


class BackupError(Exception):
    """Base class for pgbackup errors."""
    pass


class ConfigurationError(BackupError):
    """Raised when configuration is invalid or a backend cannot be set up."""
    pass


class StorageError(BackupError):
    """Raised when a storage listing or deletion fails."""
    pass


class DumpError(BackupError):
    """Raised when the dump or compressor process fails."""
    pass
