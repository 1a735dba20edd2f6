"""
Backup artifact file names.

Format: {database}_{type}_{YYYY-MM-DDTHH-MM-SS-mmmZ}.{sql|sql.gz}

The timestamp is the UTC ISO 8601 form with millisecond precision, with
colons and periods replaced by dashes so the name is safe on every provider.
"""

from datetime import datetime

from ..models import BackupType, as_utc


def format_timestamp(timestamp: datetime) -> str:
    """
    Render a timestamp the way it appears in file names.

    Args:
        timestamp: Datetime; naive values are taken to be UTC

    Returns:
        e.g. '2024-01-15T12-30-45-123Z'
    """
    ts = as_utc(timestamp)
    iso = ts.strftime('%Y-%m-%dT%H:%M:%S') + f'.{ts.microsecond // 1000:03d}Z'
    return iso.replace(':', '-').replace('.', '-')


def name_for(database_name: str, backup_type: BackupType, timestamp: datetime, compressed: bool) -> str:
    """
    Generate the file name of a dump artifact.

    Args:
        database_name: Name of the dumped database
        backup_type: Kind of backup
        timestamp: Creation time
        compressed: Whether the dump is gzip compressed

    Returns:
        File name (without directory)
    """
    extension = 'sql.gz' if compressed else 'sql'
    return f"{database_name}_{BackupType(backup_type).value}_{format_timestamp(timestamp)}.{extension}"


def type_from_name(file_name: str) -> BackupType:
    """
    Infer the backup type from a file name.

    Substring match on '_full_' and '_schema_'; anything else is treated as a
    WAL segment. Never raises.
    """
    name = file_name or ''
    if '_full_' in name:
        return BackupType.FULL
    if '_schema_' in name:
        return BackupType.SCHEMA
    return BackupType.WAL


def resolve_backup_type(metadata, file_name: str) -> BackupType:
    """
    Backup type from provider metadata, falling back to the file name.

    Args:
        metadata: Provider metadata mapping (may be None)
        file_name: Object or file name
    """
    if metadata:
        for key in ('backup_type', 'backup-type', 'backuptype', 'backupType'):
            value = metadata.get(key)
            if value:
                try:
                    return BackupType(str(value).lower())
                except ValueError:
                    break
    return type_from_name(file_name)
