"""
Shared pytest fixtures for pgbackup tests.

This module provides fixtures for:
- Configuration built from an isolated environment mapping
- Fake pg_dump executables (succeeding and failing)
- An in-memory storage backend
- Artifact metadata factories
- Mock fixtures for external services (S3)
"""

import shutil
import stat
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
import boto3
from moto import mock_aws

from pgbackup.config import load_config
from pgbackup.errors import StorageError
from pgbackup.models import BackupFileMetadata, BackupType
from pgbackup.backup.naming import name_for


FAKE_SQL = 'CREATE TABLE users (id integer PRIMARY KEY);\n'


def _write_script(path, body):
    path.write_text('#!/bin/sh\n' + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_pg_dump(tmp_path):
    """
    Executable standing in for pg_dump.

    Writes a line of SQL to stdout and records its arguments and the
    PGPASSWORD it was given next to itself.
    """
    record = tmp_path / 'pg_dump.args'
    script = _write_script(
        tmp_path / 'pg_dump',
        f'echo "$@" > "{record}"\n'
        f'echo "$PGPASSWORD" >> "{record}"\n'
        f"echo '{FAKE_SQL.strip()}'\n"
    )
    return str(script)


@pytest.fixture
def failing_pg_dump(tmp_path):
    """Executable that fails the way pg_dump does on a refused connection."""
    script = _write_script(
        tmp_path / 'pg_dump_fail',
        'echo "pg_dump: error: connection to server failed: Connection refused" >&2\n'
        'exit 1\n'
    )
    return str(script)


@pytest.fixture
def requires_gzip():
    if shutil.which('gzip') is None:
        pytest.skip('gzip is not installed')


@pytest.fixture
def base_env(tmp_path, fake_pg_dump):
    """Environment mapping pointing every directory into tmp_path."""
    return {
        'DB_NAME': 'testdb',
        'DB_PASSWORD': 'secret-pw',
        'BACKUP_LOCAL_PATH': str(tmp_path / 'backups'),
        'BACKUP_WAL_DIRECTORY': str(tmp_path / 'wal_archive'),
        'BACKUP_PG_DUMP_PATH': fake_pg_dump,
    }


@pytest.fixture
def make_config(base_env):
    """
    Factory building a BackupConfig from base_env plus overrides.

    Usage: make_config(BACKUP_COMPRESSION_ENABLED='false')
    """
    def _make(**overrides):
        env = dict(base_env)
        env.update(overrides)
        return load_config(env)
    return _make


@pytest.fixture
def config(make_config):
    """Default test configuration: local storage, no compression."""
    return make_config(BACKUP_COMPRESSION_ENABLED='false')


class FakeStorage:
    """
    In-memory storage backend.

    Uploaded results are recorded; listed artifacts are whatever is in
    ``files``. Names in ``fail_deletes`` raise StorageError on delete and
    ``fail_listing`` makes list_files raise.
    """

    provider = 'fake'

    def __init__(self, files=None):
        self.files = {f.file_name: f for f in (files or [])}
        self.uploaded = []
        self.deleted = []
        self.fail_deletes = set()
        self.fail_listing = False
        self.fail_uploads = False

    def upload(self, result):
        if self.fail_uploads:
            return replace(result, success=False, error=StorageError('upload refused'),
                           message=f"Failed to upload {result.file_name} to fake: upload refused")
        self.uploaded.append(result)
        self.files[result.file_name] = BackupFileMetadata(
            file_name=result.file_name,
            remote_locator=f"fake/{result.file_name}",
            size_bytes=result.size_bytes,
            last_modified=result.created_at,
            backup_type=result.backup_type,
        )
        return replace(result, remote_locator=f"fake/{result.file_name}",
                       message=f"Successfully uploaded {result.file_name} to fake")

    def list_files(self):
        if self.fail_listing:
            raise StorageError('listing refused')
        return list(self.files.values())

    def delete(self, file_name):
        if file_name in self.fail_deletes:
            raise StorageError(f"cannot delete {file_name}")
        self.files.pop(file_name, None)
        self.deleted.append(file_name)

    def exists(self, file_name):
        return file_name in self.files


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def make_storage():
    """Factory for FakeStorage pre-filled with listed artifacts."""
    return FakeStorage


@pytest.fixture
def make_artifact():
    """
    Factory for listed artifacts.

    make_artifact(datetime(2024, 1, 1)) gives a full backup named after its
    timestamp; backup_type and file_name can be overridden.
    """
    def _make(timestamp, backup_type=BackupType.FULL, file_name=None, size_bytes=1024):
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        if file_name is None:
            if backup_type == BackupType.WAL:
                file_name = f"0000000100000000{int(timestamp.timestamp()):08X}"
            else:
                file_name = name_for('testdb', backup_type, timestamp, compressed=True)
        return BackupFileMetadata(
            file_name=file_name,
            remote_locator=f"fake/{file_name}",
            size_bytes=size_bytes,
            last_modified=timestamp,
            backup_type=backup_type,
        )
    return _make


@pytest.fixture
def daily_artifacts(make_artifact):
    """
    One full backup per day at 01:00 UTC, 2023-12-01 through 2024-01-15.

    Returns a factory taking the first and last day.
    """
    def _make(start=datetime(2023, 12, 1), end=datetime(2024, 1, 15)):
        artifacts = []
        day = start
        while day <= end:
            artifacts.append(make_artifact(day.replace(hour=1)))
            day += timedelta(days=1)
        return artifacts
    return _make


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        # Create mock S3 resource
        s3 = boto3.resource('s3', region_name='us-east-1')

        # Create test bucket
        s3.create_bucket(Bucket='test-bucket')

        yield s3


@pytest.fixture
def dump_file(tmp_path):
    """A small artifact on disk, as produced by a dump."""
    path = tmp_path / 'dumps' / 'testdb_full_2024-01-15T12-30-45-123Z.sql.gz'
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b'dump data' * 100)
    return path
