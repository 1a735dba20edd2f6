"""
Backup executor - orchestrates one backup run.

Workflow for full and schema runs:
1. Dump the database to a local artifact
2. Upload the artifact to the configured storage backend
3. Apply the tiered retention policy to the backend

A failed dump skips upload and retention. A failed upload still lets the
retention pass run. A listing failure aborts retention only.

WAL runs copy the segment into the archive directory and upload it; WAL
retention is a separate, age based pass.
"""

import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional

from ..config import BackupConfig
from ..errors import ConfigurationError
from ..models import BackupResult, utcnow
from ..schedule import weekly_weekdays
from .dump import DumpOrchestrator
from .retention import RetentionManager, RetentionSummary
from .storage import create_storage
from .storage.base import StorageBackend
from .wal import WalArchiver


logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    IDLE = 'idle'
    DUMPING = 'dumping'
    UPLOADING = 'uploading'
    RETAINING = 'retaining'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class RunReport:
    """Structured outcome of one run, for the notification and CLI collaborators."""
    operation: str
    state: RunState = RunState.IDLE
    results: List[BackupResult] = field(default_factory=list)
    retention: Optional[RetentionSummary] = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    logs: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state == RunState.DONE

    def to_dict(self):
        return {
            'operation': self.operation,
            'state': self.state.value,
            'success': self.success,
            'results': [r.to_dict() for r in self.results],
            'retention': self.retention.to_dict() if self.retention else None,
            'error': self.error,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'logs': list(self.logs),
        }


class BackupExecutor:
    """
    Orchestrates dump, upload and retention for a configuration.

    Runs are sequential; the executor keeps no state between them apart from
    the storage backend's client handle.
    """

    def __init__(self, config: BackupConfig, storage: Optional[StorageBackend] = None):
        """
        Initialize backup executor.

        Args:
            config: Backup configuration
            storage: Storage backend (default: created from config)

        Raises:
            ConfigurationError: If the storage backend cannot be created
                or the weekly schedule has an invalid day-of-week field
        """
        try:
            weekly_weekdays(config.schedule.weekly)
        except ValueError as e:
            raise ConfigurationError(f"Invalid weekly schedule '{config.schedule.weekly}': {e}") from e

        self.config = config
        self.storage = storage if storage is not None else create_storage(config)
        self.dumper = DumpOrchestrator(config)
        self.wal_archiver = WalArchiver(config)
        self.report: Optional[RunReport] = None

    def run_full(self) -> RunReport:
        """Full dump, upload, retention."""
        return self._run_dump('full', self.dumper.create_full_backup)

    def run_schema(self) -> RunReport:
        """Schema-only dump, upload, retention."""
        return self._run_dump('schema', self.dumper.create_schema_backup)

    def run_wal_archive(self, segment_path: str) -> RunReport:
        """
        Archive a WAL segment and upload it.

        Segments are immutable once written, so a segment already present in
        storage is not uploaded again.

        Args:
            segment_path: Path of the segment to archive
        """
        self._start('wal')

        if not self.config.wal_archiving.enabled:
            self._log("WAL archiving is disabled (BACKUP_WAL_ARCHIVING_ENABLED)", level=logging.WARNING)

        self._transition(RunState.DUMPING)
        result = self.wal_archiver.archive_segment(segment_path)
        self.report.results.append(result)
        self._log(result.message)

        if not result.success:
            return self._finish(RunState.FAILED, result.message)

        self._transition(RunState.UPLOADING)
        if self.storage.exists(result.file_name):
            skipped = replace(result, message=f"WAL segment {result.file_name} already in storage, upload skipped")
            self.report.results.append(skipped)
            self._log(skipped.message)
            return self._finish(RunState.DONE)

        uploaded = self.storage.upload(result)
        self.report.results.append(uploaded)
        self._log(uploaded.message)

        if not uploaded.success:
            return self._finish(RunState.FAILED, uploaded.message)
        return self._finish(RunState.DONE)

    def run_retention(self) -> RunReport:
        """Tiered retention pass on its own."""
        self._start('retention')
        self._transition(RunState.RETAINING)
        error = self._apply_retention()
        return self._finish(RunState.FAILED if error else RunState.DONE, error)

    def run_wal_retention(self) -> RunReport:
        """Age based WAL retention pass on its own."""
        self._start('wal-retention')
        self._transition(RunState.RETAINING)

        manager = None
        try:
            manager = RetentionManager(self.config.schedule.weekly)
            self.report.retention = manager.apply_wal(self.config.wal_archiving.retention_days, self.storage)
            error = None
            if not self.report.retention.success:
                error = f"{len(self.report.retention.failed)} WAL segment(s) could not be deleted"
        except Exception as e:
            error = f"WAL retention aborted: {e}"
        finally:
            if manager is not None:
                self.report.logs.extend(manager.logs)

        return self._finish(RunState.FAILED if error else RunState.DONE, error)

    def _run_dump(self, operation: str, create) -> RunReport:
        self._start(operation)

        # Step 1: Dump
        self._transition(RunState.DUMPING)
        result = create()
        self.report.results.append(result)
        self._log(result.message)

        if not result.success:
            return self._finish(RunState.FAILED, result.message)

        # Step 2: Upload
        self._transition(RunState.UPLOADING)
        uploaded = self.storage.upload(result)
        self.report.results.append(uploaded)
        self._log(uploaded.message)

        # Step 3: Retention
        self._transition(RunState.RETAINING)
        retention_error = self._apply_retention()

        if not uploaded.success:
            return self._finish(RunState.FAILED, uploaded.message)
        if retention_error:
            return self._finish(RunState.FAILED, retention_error)
        return self._finish(RunState.DONE)

    def _apply_retention(self) -> Optional[str]:
        """Run the tiered pass, returning an error description or None."""
        manager = None
        try:
            manager = RetentionManager(self.config.schedule.weekly)
            self.report.retention = manager.apply(self.config.storage.retention, self.storage)
        except Exception as e:
            self._log(f"Retention aborted: {e}", level=logging.ERROR)
            return f"Retention aborted: {e}"
        finally:
            if manager is not None:
                self.report.logs.extend(manager.logs)

        if not self.report.retention.success:
            return f"{len(self.report.retention.failed)} backup(s) could not be deleted"
        return None

    def _start(self, operation: str):
        self.report = RunReport(operation=operation)
        self._log(f"Starting {operation} run (storage: {self.config.storage.provider})")

    def _transition(self, state: RunState):
        logger.debug(f"{self.report.operation}: {self.report.state.value} -> {state.value}")
        self.report.state = state

    def _finish(self, state: RunState, error: Optional[str] = None) -> RunReport:
        self._transition(state)
        self.report.error = error
        self.report.completed_at = utcnow()
        if state == RunState.FAILED:
            self._log(f"{self.report.operation} run failed: {error}", level=logging.ERROR)
        else:
            self._log(f"{self.report.operation} run completed successfully")
        return self.report

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.report.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)
