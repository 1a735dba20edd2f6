"""
Unit tests for the command line entry point (pgbackup/cli.py).
"""

import json
from unittest.mock import patch

import pytest

from pgbackup.cli import main, build_parser, EXIT_OK, EXIT_FAILED, EXIT_CONFIG


@pytest.fixture
def cli_env(monkeypatch, base_env):
    """Export base_env into os.environ, where the CLI reads its configuration."""
    for name, value in base_env.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setenv('BACKUP_COMPRESSION_ENABLED', 'false')
    with patch('pgbackup.cli.configure_logging') as mock_logging:
        yield mock_logging


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_full_backup_json(cli_env, capsys):
    assert main(['--json', 'full']) == EXIT_OK

    report = json.loads(capsys.readouterr().out)
    assert report['operation'] == 'full'
    assert report['state'] == 'done'
    assert report['results'][0]['file_name'].startswith('testdb_full_')


def test_full_backup_text(cli_env, capsys):
    assert main(['full']) == EXIT_OK

    out = capsys.readouterr().out
    assert out.startswith('full: done')
    assert 'Successfully created full backup' in out
    assert 'retention: kept 1, deleted 0, failed 0' in out


def test_log_level_override(cli_env):
    main(['--log-level', 'DEBUG', 'schema'])

    level, log_dir = cli_env.call_args[0]
    assert level == 'DEBUG'
    assert log_dir is None


def test_failed_dump_exit_code(cli_env, monkeypatch, failing_pg_dump, capsys):
    monkeypatch.setenv('BACKUP_PG_DUMP_PATH', failing_pg_dump)

    assert main(['full']) == EXIT_FAILED
    assert 'error:' in capsys.readouterr().out


def test_invalid_configuration(cli_env, monkeypatch, capsys):
    monkeypatch.setenv('BACKUP_STORAGE_PROVIDER', 'ftp')

    assert main(['full']) == EXIT_CONFIG
    assert 'Configuration error' in capsys.readouterr().err


def test_incomplete_storage_configuration(cli_env, monkeypatch):
    monkeypatch.setenv('BACKUP_STORAGE_PROVIDER', 's3')

    assert main(['full']) == EXIT_CONFIG


def test_list(cli_env, capsys):
    main(['full'])
    capsys.readouterr()

    assert main(['--json', 'list']) == EXIT_OK

    files = json.loads(capsys.readouterr().out)
    assert len(files) == 1
    assert files[0]['backup_type'] == 'full'


def test_list_empty(cli_env, capsys):
    assert main(['list']) == EXIT_OK
    assert '(none)' in capsys.readouterr().out


def test_wal_missing_segment(cli_env, tmp_path):
    assert main(['wal', str(tmp_path / '000000010000000000000009')]) == EXIT_FAILED


def test_retention_commands(cli_env):
    assert main(['retention']) == EXIT_OK
    assert main(['wal-retention']) == EXIT_OK


def test_schedule(cli_env, capsys):
    assert main(['--json', 'schedule']) == EXIT_OK

    times = json.loads(capsys.readouterr().out)
    assert set(times) == {'daily', 'weekly', 'monthly', 'yearly'}
    assert all(times.values())
