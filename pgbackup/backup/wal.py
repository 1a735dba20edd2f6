"""
WAL segment archiving.

Copies a write-ahead-log segment into the local archive directory, keeping
its original file name.
"""

import os
import shutil
import logging
from pathlib import Path

from ..config import BackupConfig
from ..models import BackupResult, BackupType, utcnow


logger = logging.getLogger(__name__)


class WalArchiver:
    """Copies WAL segments into the configured archive directory."""

    def __init__(self, config: BackupConfig):
        self.config = config
        self.archive_dir = Path(config.wal_archiving.directory)

    def archive_segment(self, source_path: str) -> BackupResult:
        """
        Archive a single WAL segment.

        Args:
            source_path: Path of the segment written by the database

        Returns:
            BackupResult of type wal; success=False if the copy failed
        """
        timestamp = utcnow()
        file_name = os.path.basename(source_path)

        try:
            source = Path(source_path)
            if not source.is_file():
                raise FileNotFoundError(f"WAL segment not found: {source_path}")

            # Create archive directory
            self.archive_dir.mkdir(parents=True, exist_ok=True)
            dest_path = self.archive_dir / file_name

            shutil.copy2(source, dest_path)
            size = dest_path.stat().st_size

            logger.info(f"Archived WAL segment {file_name} ({size:,} bytes)")

            return BackupResult(
                success=True,
                backup_type=BackupType.WAL,
                file_name=file_name,
                local_path=str(dest_path),
                size_bytes=size,
                created_at=timestamp,
                message=f"Successfully archived WAL segment: {file_name}"
            )

        except Exception as e:
            logger.error(f"Failed to archive WAL segment {file_name}: {e}")
            return BackupResult(
                success=False,
                backup_type=BackupType.WAL,
                file_name=file_name,
                local_path='',
                size_bytes=0,
                created_at=utcnow(),
                message=f"Failed to archive WAL segment: {e}",
                error=e
            )
