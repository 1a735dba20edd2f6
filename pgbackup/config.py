"""
Configuration for pgbackup.

``load_config`` builds an immutable ``BackupConfig`` from an environment
mapping. Every field has a default, so a zero-configuration run dumps a local
PostgreSQL instance into ``./backups``.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple, Union

from .errors import ConfigurationError
from .models import RetentionPolicy
from .schedule import validate_schedule


PROVIDERS = ('local', 's3', 'gcs', 'azure')


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = 'localhost'
    port: int = 5432
    name: str = 'postgres'
    username: str = 'postgres'
    password: str = 'postgres'
    schema: Optional[str] = 'public'


@dataclass(frozen=True)
class CompressionConfig:
    enabled: bool = True
    level: int = 6  # gzip level, 1-9


@dataclass(frozen=True)
class LocalStorageConfig:
    path: str = './backups'


@dataclass(frozen=True)
class S3StorageConfig:
    region: str = 'us-east-1'
    bucket: str = 'pgbackup-backups'
    prefix: str = 'database/'
    access_key_id: str = ''
    secret_access_key: str = ''
    endpoint: Optional[str] = None  # S3-compatible services


@dataclass(frozen=True)
class GCSStorageConfig:
    bucket: str = 'pgbackup-backups'
    prefix: str = 'database/'
    key_file_path: Optional[str] = None


@dataclass(frozen=True)
class AzureStorageConfig:
    connection_string: str = ''
    container_name: str = 'pgbackup-backups'
    prefix: str = 'database/'


ProviderConfig = Union[LocalStorageConfig, S3StorageConfig, GCSStorageConfig, AzureStorageConfig]


@dataclass(frozen=True)
class StorageConfig:
    provider: str = 'local'
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    local: LocalStorageConfig = field(default_factory=LocalStorageConfig)
    s3: S3StorageConfig = field(default_factory=S3StorageConfig)
    gcs: GCSStorageConfig = field(default_factory=GCSStorageConfig)
    azure: AzureStorageConfig = field(default_factory=AzureStorageConfig)
    timeout: int = 300  # seconds per remote call

    @property
    def active(self) -> ProviderConfig:
        """The provider block selected by ``provider``."""
        return getattr(self, self.provider)


@dataclass(frozen=True)
class ScheduleConfig:
    daily: str = '0 1 * * *'      # 1:00 AM every day
    weekly: str = '0 2 * * 0'     # 2:00 AM every Sunday
    monthly: str = '0 3 1 * *'    # 3:00 AM on the 1st of every month
    yearly: str = '0 4 1 1 *'     # 4:00 AM on January 1st

    def as_dict(self):
        return {
            'daily': self.daily,
            'weekly': self.weekly,
            'monthly': self.monthly,
            'yearly': self.yearly
        }


@dataclass(frozen=True)
class WalArchivingConfig:
    enabled: bool = False
    directory: str = './wal_archive'
    retention_days: int = 7


@dataclass(frozen=True)
class NotificationConfig:
    enabled: bool = False
    emails: Tuple[str, ...] = ()
    webhook_url: Optional[str] = None


@dataclass(frozen=True)
class DumpConfig:
    directory: str = './backups'
    pg_dump_path: str = 'pg_dump'
    compressor_path: str = 'gzip'
    timeout: int = 3600


@dataclass(frozen=True)
class LoggingConfig:
    level: str = 'INFO'
    directory: Optional[str] = None


@dataclass(frozen=True)
class BackupConfig:
    """Complete configuration of one backup run."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    wal_archiving: WalArchivingConfig = field(default_factory=WalArchivingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    dump: DumpConfig = field(default_factory=DumpConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get(env: Mapping[str, str], name: str, default: Optional[str]) -> Optional[str]:
    # Empty values fall back to the default, the same as an unset variable
    value = env.get(name)
    return value if value else default


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: Optional[int] = None,
             maximum: Optional[int] = None) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"{name} must be <= {maximum}, got {value}")
    return value


def load_config(environ: Optional[Mapping[str, str]] = None) -> BackupConfig:
    """
    Build configuration from environment variables.

    Args:
        environ: Mapping to read from (default: os.environ); never modified

    Returns:
        Immutable BackupConfig

    Raises:
        ConfigurationError: If a value cannot be parsed or is out of range
    """
    env = os.environ if environ is None else environ

    database = DatabaseConfig(
        host=_get(env, 'DB_HOST', 'localhost'),
        port=_get_int(env, 'DB_PORT', 5432, minimum=1, maximum=65535),
        name=_get(env, 'DB_NAME', 'postgres'),
        username=_get(env, 'DB_USERNAME', 'postgres'),
        password=_get(env, 'DB_PASSWORD', 'postgres'),
        schema=_get(env, 'DB_SCHEMA', 'public'),
    )

    provider = _get(env, 'BACKUP_STORAGE_PROVIDER', 'local').strip().lower()
    if provider not in PROVIDERS:
        raise ConfigurationError(
            f"Invalid BACKUP_STORAGE_PROVIDER: {provider}. Valid options: {list(PROVIDERS)}"
        )

    retention = RetentionPolicy(
        daily=_get_int(env, 'BACKUP_RETENTION_DAILY', 7, minimum=0),
        weekly=_get_int(env, 'BACKUP_RETENTION_WEEKLY', 4, minimum=0),
        monthly=_get_int(env, 'BACKUP_RETENTION_MONTHLY', 12, minimum=0),
        yearly=_get_int(env, 'BACKUP_RETENTION_YEARLY', 2, minimum=0),
    )

    compression = CompressionConfig(
        enabled=env.get('BACKUP_COMPRESSION_ENABLED', '').strip().lower() != 'false',
        level=_get_int(env, 'BACKUP_COMPRESSION_LEVEL', 6, minimum=1, maximum=9),
    )

    local_path = _get(env, 'BACKUP_LOCAL_PATH', './backups')

    storage = StorageConfig(
        provider=provider,
        retention=retention,
        compression=compression,
        local=LocalStorageConfig(path=local_path),
        s3=S3StorageConfig(
            region=_get(env, 'BACKUP_S3_REGION', 'us-east-1'),
            bucket=_get(env, 'BACKUP_S3_BUCKET', 'pgbackup-backups'),
            prefix=_get(env, 'BACKUP_S3_PREFIX', 'database/'),
            access_key_id=_get(env, 'BACKUP_S3_ACCESS_KEY_ID', ''),
            secret_access_key=_get(env, 'BACKUP_S3_SECRET_ACCESS_KEY', ''),
            endpoint=_get(env, 'BACKUP_S3_ENDPOINT', None),
        ),
        gcs=GCSStorageConfig(
            bucket=_get(env, 'BACKUP_GCS_BUCKET', 'pgbackup-backups'),
            prefix=_get(env, 'BACKUP_GCS_PREFIX', 'database/'),
            key_file_path=_get(env, 'BACKUP_GCS_KEY_FILE_PATH', None),
        ),
        azure=AzureStorageConfig(
            connection_string=_get(env, 'BACKUP_AZURE_CONNECTION_STRING', ''),
            container_name=_get(env, 'BACKUP_AZURE_CONTAINER_NAME', 'pgbackup-backups'),
            prefix=_get(env, 'BACKUP_AZURE_PREFIX', 'database/'),
        ),
        timeout=_get_int(env, 'BACKUP_STORAGE_TIMEOUT', 300, minimum=1),
    )

    schedule = ScheduleConfig(
        daily=_get(env, 'BACKUP_SCHEDULE_DAILY', '0 1 * * *'),
        weekly=_get(env, 'BACKUP_SCHEDULE_WEEKLY', '0 2 * * 0'),
        monthly=_get(env, 'BACKUP_SCHEDULE_MONTHLY', '0 3 1 * *'),
        yearly=_get(env, 'BACKUP_SCHEDULE_YEARLY', '0 4 1 1 *'),
    )
    try:
        validate_schedule(schedule.as_dict())
    except ValueError as e:
        raise ConfigurationError(str(e))

    wal_archiving = WalArchivingConfig(
        enabled=env.get('BACKUP_WAL_ARCHIVING_ENABLED', '').strip().lower() == 'true',
        directory=_get(env, 'BACKUP_WAL_DIRECTORY', './wal_archive'),
        retention_days=_get_int(env, 'BACKUP_WAL_RETENTION', 7, minimum=0),
    )

    emails = _get(env, 'BACKUP_NOTIFICATION_EMAILS', '')
    notifications = NotificationConfig(
        enabled=env.get('BACKUP_NOTIFICATIONS_ENABLED', '').strip().lower() == 'true',
        emails=tuple(e.strip() for e in emails.split(',') if e.strip()),
        webhook_url=_get(env, 'BACKUP_NOTIFICATION_WEBHOOK_URL', None),
    )

    dump = DumpConfig(
        directory=_get(env, 'BACKUP_DUMP_DIR', local_path),
        pg_dump_path=_get(env, 'BACKUP_PG_DUMP_PATH', 'pg_dump'),
        compressor_path=_get(env, 'BACKUP_COMPRESSOR_PATH', 'gzip'),
        timeout=_get_int(env, 'BACKUP_DUMP_TIMEOUT', 3600, minimum=1),
    )

    logging_config = LoggingConfig(
        level=_get(env, 'BACKUP_LOG_LEVEL', 'INFO').upper(),
        directory=_get(env, 'BACKUP_LOG_DIR', None),
    )

    return BackupConfig(
        database=database,
        storage=storage,
        schedule=schedule,
        wal_archiving=wal_archiving,
        notifications=notifications,
        dump=dump,
        logging=logging_config,
    )
