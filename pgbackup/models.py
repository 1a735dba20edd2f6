"""
Value types passed between the dump, storage and retention stages.

All of them are frozen: a later stage derives a new value with
``dataclasses.replace`` instead of mutating the one it received.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any


class BackupType(str, enum.Enum):
    """Kind of artifact."""
    FULL = 'full'
    SCHEMA = 'schema'
    WAL = 'wal'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class BackupResult:
    """Outcome of a dump, WAL copy or upload."""
    success: bool
    backup_type: BackupType
    file_name: str = ''
    local_path: str = ''
    remote_locator: Optional[str] = None
    size_bytes: int = 0
    created_at: datetime = field(default_factory=utcnow)
    message: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def error_text(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'backup_type': self.backup_type.value,
            'file_name': self.file_name,
            'local_path': self.local_path,
            'remote_locator': self.remote_locator,
            'size_bytes': self.size_bytes,
            'created_at': self.created_at.isoformat(),
            'message': self.message,
            'error': self.error_text,
        }


@dataclass(frozen=True)
class BackupFileMetadata:
    """An artifact as reported by a storage backend listing."""
    file_name: str
    remote_locator: str
    size_bytes: int
    last_modified: datetime
    backup_type: BackupType
    metadata: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file_name': self.file_name,
            'remote_locator': self.remote_locator,
            'size_bytes': self.size_bytes,
            'last_modified': self.last_modified.isoformat(),
            'backup_type': self.backup_type.value,
        }


TIERS = ('daily', 'weekly', 'monthly', 'yearly')


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Number of artifacts to keep per tier.

    These are counts, not days: ``weekly=4`` keeps the four most recent
    artifacts that qualify for the weekly tier.
    """
    daily: int = 7
    weekly: int = 4
    monthly: int = 12
    yearly: int = 2

    def __post_init__(self):
        for tier in TIERS:
            value = getattr(self, tier)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"Retention count for {tier} must be a non-negative integer, got {value!r}")

    def __getitem__(self, tier: str) -> int:
        if tier not in TIERS:
            raise KeyError(tier)
        return getattr(self, tier)

    @property
    def upper_bound(self) -> int:
        return self.daily + self.weekly + self.monthly + self.yearly
