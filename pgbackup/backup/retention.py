"""
Retention policy enforcement for backups.

Dumps (full and schema) follow a tiered, count based policy. Every dump is a
daily candidate; dumps taken on the weekly schedule's weekday are also weekly
candidates, dumps taken on the 1st of a month monthly candidates, and dumps
taken on January 1st yearly candidates. Each tier keeps its N most recent
candidates and a dump survives if any tier keeps it.

WAL segments follow a plain age cutoff in days.

Tier membership is computed at retention time, so changing the schedule
reclassifies existing backups. The timestamp used is the creation time from
the object's ``timestamp`` metadata when the listing carries it (GCS, Azure),
otherwise the listed last_modified: the upload time on S3 and the file mtime
locally. The timestamp encoded in the file name is not consulted, so on S3 a
dump started late on Saturday that finishes after midnight UTC counts as a
Sunday backup.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from ..models import BackupFileMetadata, BackupType, RetentionPolicy, TIERS, as_utc, utcnow
from ..schedule import weekly_weekdays
from .storage.base import StorageBackend


logger = logging.getLogger(__name__)

# Sunday, matching the default weekly schedule
DEFAULT_WEEKLY_WEEKDAYS = frozenset({6})


@dataclass
class RetentionSummary:
    """What a retention pass kept, deleted and failed to delete."""
    kept: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self):
        return {
            'kept': list(self.kept),
            'deleted': list(self.deleted),
            'failed': dict(self.failed),
        }


def artifact_time(artifact: BackupFileMetadata) -> datetime:
    """Creation time of an artifact in UTC, preferring its timestamp metadata."""
    value = (artifact.metadata or {}).get('timestamp')
    if value:
        try:
            return as_utc(datetime.fromisoformat(value))
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable timestamp metadata on {artifact.file_name}: {value!r}")
    return as_utc(artifact.last_modified)


def tier_eligible(tier: str, timestamp: datetime, weekly_days: FrozenSet[int]) -> bool:
    """
    Whether an artifact taken at ``timestamp`` (UTC) qualifies for a tier.

    Args:
        tier: 'daily', 'weekly', 'monthly' or 'yearly'
        timestamp: Artifact timestamp
        weekly_days: Python weekday numbers of the weekly schedule
    """
    ts = as_utc(timestamp)
    if tier == 'daily':
        return True
    if tier == 'weekly':
        return ts.weekday() in weekly_days
    if tier == 'monthly':
        return ts.day == 1
    if tier == 'yearly':
        return ts.month == 1 and ts.day == 1
    raise ValueError(f"Unknown retention tier: {tier}")


def select_keep_set(artifacts: Iterable[BackupFileMetadata], policy: RetentionPolicy,
                    weekly_days: FrozenSet[int] = DEFAULT_WEEKLY_WEEKDAYS) -> Set[str]:
    """
    Compute the names of the artifacts to keep.

    For each tier the eligible artifacts are sorted newest first and the
    first policy[tier] are kept; the result is the union over all tiers.

    Args:
        artifacts: Artifacts subject to the tiered policy
        policy: Counts per tier
        weekly_days: Python weekday numbers of the weekly schedule

    Returns:
        Set of file names to keep
    """
    artifacts = list(artifacts)
    keep = set()

    for tier in TIERS:
        count = policy[tier]
        if count <= 0:
            continue
        candidates = [a for a in artifacts if tier_eligible(tier, artifact_time(a), weekly_days)]
        candidates.sort(key=artifact_time, reverse=True)
        keep.update(a.file_name for a in candidates[:count])

    return keep


class RetentionManager:
    """
    Applies retention policies against a storage backend.

    Listing failures propagate: no deletion is attempted against an unknown
    artifact set. Deletion failures are recorded per file and the pass goes
    on with the remaining files.
    """

    def __init__(self, weekly_schedule: Optional[str] = None):
        """
        Initialize retention manager.

        Args:
            weekly_schedule: Cron expression of the weekly backup; its
                day-of-week field decides weekly tier eligibility
        """
        self.weekly_days = weekly_weekdays(weekly_schedule) if weekly_schedule else DEFAULT_WEEKLY_WEEKDAYS
        self.logs = []

    def apply(self, policy: RetentionPolicy, backend: StorageBackend) -> RetentionSummary:
        """
        Enforce the tiered policy on the dumps held by a backend.

        Args:
            policy: Counts per tier
            backend: Storage backend to list and prune

        Returns:
            RetentionSummary

        Raises:
            StorageError: If the backend listing fails
        """
        self._log(
            f"Enforcing retention policy: daily={policy.daily}, weekly={policy.weekly}, "
            f"monthly={policy.monthly}, yearly={policy.yearly}"
        )

        artifacts = [
            a for a in backend.list_files()
            if a.backup_type in (BackupType.FULL, BackupType.SCHEMA)
        ]
        keep = select_keep_set(artifacts, policy, self.weekly_days)

        to_delete = [a for a in artifacts if a.file_name not in keep]
        summary = RetentionSummary(kept=sorted(keep))
        self._delete_all(backend, to_delete, summary)

        self._log(
            f"Retention complete. Kept: {len(summary.kept)}, "
            f"Deleted: {len(summary.deleted)}, Errors: {len(summary.failed)}"
        )
        return summary

    def apply_wal(self, retention_days: int, backend: StorageBackend,
                  now: Optional[datetime] = None) -> RetentionSummary:
        """
        Delete WAL segments older than ``retention_days``.

        Args:
            retention_days: Age in days after which a segment is deleted
            backend: Storage backend to list and prune
            now: Reference time (default: current UTC time)

        Returns:
            RetentionSummary

        Raises:
            StorageError: If the backend listing fails
        """
        cutoff = as_utc(now or utcnow()) - timedelta(days=retention_days)
        self._log(f"Enforcing WAL retention: {retention_days} days (cutoff {cutoff.isoformat()})")

        segments = [a for a in backend.list_files() if a.backup_type == BackupType.WAL]
        to_delete = [a for a in segments if artifact_time(a) < cutoff]

        summary = RetentionSummary(
            kept=sorted(a.file_name for a in segments if artifact_time(a) >= cutoff)
        )
        self._delete_all(backend, to_delete, summary)

        self._log(
            f"WAL retention complete. Kept: {len(summary.kept)}, "
            f"Deleted: {len(summary.deleted)}, Errors: {len(summary.failed)}"
        )
        return summary

    def _delete_all(self, backend: StorageBackend, artifacts: List[BackupFileMetadata],
                    summary: RetentionSummary):
        # One at a time, so each failure is attributed to a single file
        for artifact in artifacts:
            try:
                backend.delete(artifact.file_name)
                summary.deleted.append(artifact.file_name)
                self._log(f"Deleted backup: {artifact.file_name}")
            except Exception as e:
                summary.failed[artifact.file_name] = str(e)
                self._log(f"Failed to delete backup {artifact.file_name}: {e}", level=logging.WARNING)

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)
