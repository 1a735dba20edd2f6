"""
Unit tests for storage backends (pgbackup/backup/storage/).

Tests the shared key helpers, LocalStorage, S3Storage (against moto) and
the provider factory.
"""

import os
from datetime import datetime, timezone

import pytest
from moto import mock_aws

from pgbackup.errors import ConfigurationError, StorageError
from pgbackup.models import BackupResult, BackupType
from pgbackup.backup.storage import (
    BACKENDS,
    LocalStorage,
    S3Storage,
    create_storage,
    object_key,
)
from pgbackup.backup.storage.base import listing_prefix, is_direct_child, upload_metadata


def _result(path, backup_type=BackupType.FULL):
    return BackupResult(
        success=True,
        backup_type=backup_type,
        file_name=os.path.basename(str(path)),
        local_path=str(path),
        size_bytes=os.path.getsize(str(path)),
        created_at=datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc),
        message='created'
    )


class TestObjectKey:
    """Test object key construction shared by the remote backends."""

    @pytest.mark.parametrize('prefix,expected', [
        ('database/', 'database/a.sql'),
        ('database', 'database/a.sql'),
        ('nested/path/', 'nested/path/a.sql'),
        ('', 'a.sql'),
        (None, 'a.sql'),
    ])
    def test_single_separator(self, prefix, expected):
        assert object_key('a.sql', prefix) == expected

    def test_never_double_slash(self):
        for prefix in ('p', 'p/', 'a/b', 'a/b/'):
            assert '//' not in object_key('x.sql.gz', prefix)

    def test_listing_prefix(self):
        assert listing_prefix('database') == 'database/'
        assert listing_prefix('database/') == 'database/'
        assert listing_prefix('') == ''

    @pytest.mark.parametrize('name,prefix,expected', [
        ('database/a.sql', 'database/', True),
        ('database/a.sql', 'database', True),
        ('database/old/a.sql', 'database/', False),
        ('database/', 'database/', False),
        ('a.sql', '', True),
        ('sub/a.sql', '', False),
    ])
    def test_is_direct_child(self, name, prefix, expected):
        assert is_direct_child(name, prefix) is expected

    def test_upload_metadata(self, dump_file):
        metadata = upload_metadata(_result(dump_file))

        assert metadata == {'backup_type': 'full', 'timestamp': '2024-01-15T12:30:45+00:00'}

    def test_upload_metadata_type_key(self, dump_file):
        metadata = upload_metadata(_result(dump_file), type_key='backup-type')

        assert metadata['backup-type'] == 'full'
        assert 'backup_type' not in metadata


class TestLocalStorage:
    """Test LocalStorage for storing backups in a directory."""

    def test_creates_base_directory(self, tmp_path):
        base = tmp_path / 'a' / 'b'
        LocalStorage(str(base))

        assert base.is_dir()

    def test_base_path_conflict(self, tmp_path):
        blocker = tmp_path / 'file'
        blocker.write_text('x')

        with pytest.raises(ConfigurationError):
            LocalStorage(str(blocker / 'backups'))

    def test_upload_copies_file(self, tmp_path, dump_file):
        storage = LocalStorage(str(tmp_path / 'store'))

        uploaded = storage.upload(_result(dump_file))

        dest = tmp_path / 'store' / dump_file.name
        assert uploaded.success is True
        assert dest.read_bytes() == dump_file.read_bytes()
        assert uploaded.remote_locator == str(dest.resolve())
        assert uploaded.message.startswith(f"Successfully uploaded {dump_file.name} to local storage")
        # Source stays in place
        assert dump_file.exists()

    def test_upload_in_place(self, tmp_path):
        store = tmp_path / 'store'
        storage = LocalStorage(str(store))
        artifact = store / 'testdb_full_x.sql'
        artifact.write_text('select 1;')

        uploaded = storage.upload(_result(artifact))

        assert uploaded.success is True
        assert artifact.read_text() == 'select 1;'

    def test_upload_missing_source(self, tmp_path):
        storage = LocalStorage(str(tmp_path / 'store'))
        result = BackupResult(success=True, backup_type=BackupType.FULL, file_name='gone.sql',
                              local_path=str(tmp_path / 'gone.sql'))

        uploaded = storage.upload(result)

        assert uploaded.success is False
        assert isinstance(uploaded.error, StorageError)
        assert 'Failed to upload gone.sql to local storage' in uploaded.message

    def test_list_files(self, tmp_path):
        store = tmp_path / 'store'
        storage = LocalStorage(str(store))
        (store / 'db_full_2024-01-15T01-00-00-000Z.sql.gz').write_bytes(b'12345')
        (store / 'db_schema_2024-01-15T01-00-00-000Z.sql').write_bytes(b'1')
        (store / '000000010000000000000001').write_bytes(b'1')
        (store / 'subdir').mkdir()

        files = {f.file_name: f for f in storage.list_files()}

        assert set(files) == {
            'db_full_2024-01-15T01-00-00-000Z.sql.gz',
            'db_schema_2024-01-15T01-00-00-000Z.sql',
            '000000010000000000000001',
        }
        full = files['db_full_2024-01-15T01-00-00-000Z.sql.gz']
        assert full.backup_type == BackupType.FULL
        assert full.size_bytes == 5
        assert full.last_modified.tzinfo is not None
        assert files['db_schema_2024-01-15T01-00-00-000Z.sql'].backup_type == BackupType.SCHEMA
        assert files['000000010000000000000001'].backup_type == BackupType.WAL

    def test_list_files_unreadable(self, tmp_path):
        storage = LocalStorage(str(tmp_path / 'store'))
        os.rmdir(tmp_path / 'store')

        with pytest.raises(StorageError):
            storage.list_files()

    def test_delete_and_exists(self, tmp_path):
        store = tmp_path / 'store'
        storage = LocalStorage(str(store))
        (store / 'a.sql').write_text('x')

        assert storage.exists('a.sql') is True
        storage.delete('a.sql')
        assert storage.exists('a.sql') is False

    def test_delete_missing_is_ignored(self, tmp_path):
        storage = LocalStorage(str(tmp_path / 'store'))

        storage.delete('never_there.sql')

    def test_delete_failure(self, tmp_path):
        store = tmp_path / 'store'
        storage = LocalStorage(str(store))
        # A directory cannot be unlinked
        (store / 'a.sql').mkdir()

        with pytest.raises(StorageError):
            storage.delete('a.sql')

    def test_get_full_path(self, tmp_path):
        storage = LocalStorage(str(tmp_path))

        assert storage.get_full_path('a.sql') == str(tmp_path / 'a.sql')


class TestS3Storage:
    """Test S3Storage for AWS S3 operations."""

    def _storage(self, prefix='database/'):
        return S3Storage(
            access_key='test_access_key',
            secret_key='test_secret_key',
            bucket_name='test-bucket',
            region='us-east-1',
            prefix=prefix
        )

    def test_requires_bucket_and_credentials(self):
        with pytest.raises(ConfigurationError):
            S3Storage(access_key='a', secret_key='b', bucket_name='')
        with pytest.raises(ConfigurationError):
            S3Storage(access_key='', secret_key='b', bucket_name='test-bucket')

    def test_upload(self, mock_s3, dump_file):
        storage = self._storage()

        uploaded = storage.upload(_result(dump_file))

        key = f"database/{dump_file.name}"
        assert uploaded.success is True
        assert uploaded.remote_locator == f"test-bucket/{key}"
        assert uploaded.message == f"Successfully uploaded {dump_file.name} to S3: test-bucket/{key}"

        obj = mock_s3.Object('test-bucket', key)
        assert obj.content_length == dump_file.stat().st_size
        assert obj.content_type == 'application/octet-stream'
        assert obj.metadata == {'backup-type': 'full', 'timestamp': '2024-01-15T12:30:45+00:00'}

    def test_upload_without_prefix(self, mock_s3, dump_file):
        uploaded = self._storage(prefix='').upload(_result(dump_file))

        assert uploaded.remote_locator == f"test-bucket/{dump_file.name}"

    def test_upload_missing_bucket(self, mock_s3, dump_file):
        storage = S3Storage(access_key='k', secret_key='s', bucket_name='no-such-bucket')

        uploaded = storage.upload(_result(dump_file))

        assert uploaded.success is False
        assert uploaded.error is not None
        assert str(uploaded.error) in uploaded.message
        assert dump_file.exists()

    def test_upload_unreachable_endpoint(self, dump_file):
        original = dump_file.read_bytes()
        storage = S3Storage(
            access_key='k',
            secret_key='s',
            bucket_name='test-bucket',
            endpoint_url='http://127.0.0.1:9',
            timeout=1
        )

        uploaded = storage.upload(_result(dump_file))

        assert uploaded.success is False
        assert uploaded.message.startswith(f"Failed to upload {dump_file.name} to S3:")
        assert str(uploaded.error) in uploaded.message
        # Local artifact untouched
        assert dump_file.read_bytes() == original

    def test_list_files(self, mock_s3):
        bucket = mock_s3.Bucket('test-bucket')
        bucket.put_object(Key='database/db_full_2024-01-15T01-00-00-000Z.sql.gz', Body=b'12345')
        bucket.put_object(Key='database/db_schema_2024-01-15T01-00-00-000Z.sql', Body=b'1')
        bucket.put_object(Key='database/000000010000000000000001', Body=b'1')
        bucket.put_object(Key='database/nested/db_full_2023-01-01T01-00-00-000Z.sql.gz', Body=b'1')
        bucket.put_object(Key='database_old/db_full_2022-01-01T01-00-00-000Z.sql.gz', Body=b'1')

        files = {f.file_name: f for f in self._storage().list_files()}

        assert set(files) == {
            'db_full_2024-01-15T01-00-00-000Z.sql.gz',
            'db_schema_2024-01-15T01-00-00-000Z.sql',
            '000000010000000000000001',
        }
        full = files['db_full_2024-01-15T01-00-00-000Z.sql.gz']
        assert full.size_bytes == 5
        assert full.backup_type == BackupType.FULL
        assert full.remote_locator == 'test-bucket/database/db_full_2024-01-15T01-00-00-000Z.sql.gz'
        assert full.last_modified.tzinfo is not None
        assert files['000000010000000000000001'].backup_type == BackupType.WAL

    def test_list_files_paginates(self, mock_s3):
        bucket = mock_s3.Bucket('test-bucket')
        for i in range(1005):
            bucket.put_object(Key=f'database/db_full_{i:04d}.sql', Body=b'')

        assert len(self._storage().list_files()) == 1005

    def test_list_files_error(self, mock_s3):
        storage = S3Storage(access_key='k', secret_key='s', bucket_name='no-such-bucket')

        with pytest.raises(StorageError, match='NoSuchBucket'):
            storage.list_files()

    def test_delete_and_exists(self, mock_s3, dump_file):
        storage = self._storage()
        storage.upload(_result(dump_file))

        assert storage.exists(dump_file.name) is True
        storage.delete(dump_file.name)
        assert storage.exists(dump_file.name) is False

    def test_exists_on_error_is_false(self, mock_s3):
        storage = S3Storage(access_key='k', secret_key='s', bucket_name='no-such-bucket')

        assert storage.exists('anything.sql') is False

    def test_connection(self, mock_s3):
        assert self._storage().test_connection() is True

        with pytest.raises(StorageError):
            S3Storage(access_key='k', secret_key='s', bucket_name='no-such-bucket').test_connection()


class TestCreateStorage:
    """Test backend selection by provider tag."""

    def test_registered_providers(self):
        assert set(BACKENDS) == {'local', 's3', 'gcs', 'azure'}

    def test_local(self, config):
        storage = create_storage(config)

        assert isinstance(storage, LocalStorage)
        assert str(storage.base_path) == config.storage.local.path

    @mock_aws
    def test_s3(self, make_config):
        config = make_config(
            BACKUP_STORAGE_PROVIDER='s3',
            BACKUP_S3_ACCESS_KEY_ID='key',
            BACKUP_S3_SECRET_ACCESS_KEY='secret',
            BACKUP_S3_BUCKET='bucket',
            BACKUP_S3_PREFIX='pg',
        )

        storage = create_storage(config)

        assert isinstance(storage, S3Storage)
        assert storage.get_object_key('a.sql') == 'pg/a.sql'

    def test_s3_without_credentials(self, make_config):
        with pytest.raises(ConfigurationError):
            create_storage(make_config(BACKUP_STORAGE_PROVIDER='s3'))

    def test_azure_without_connection_string(self, make_config):
        with pytest.raises(ConfigurationError):
            create_storage(make_config(BACKUP_STORAGE_PROVIDER='azure'))
