"""
Backup module for pgbackup.

This module handles the core backup functionality including:
- Artifact naming
- Database dumps (pg_dump, optionally gzip compressed)
- WAL segment archiving
- Storage (local, S3, GCS, Azure)
- Retention policy enforcement
- Run orchestration
"""

from .naming import name_for, type_from_name
from .dump import DumpOrchestrator
from .wal import WalArchiver
from .storage import LocalStorage, S3Storage, GCSStorage, AzureStorage, create_storage
from .retention import RetentionManager, RetentionSummary
from .executor import BackupExecutor, RunReport, RunState

__all__ = [
    'name_for',
    'type_from_name',
    'DumpOrchestrator',
    'WalArchiver',
    'LocalStorage',
    'S3Storage',
    'GCSStorage',
    'AzureStorage',
    'create_storage',
    'RetentionManager',
    'RetentionSummary',
    'BackupExecutor',
    'RunReport',
    'RunState'
]
