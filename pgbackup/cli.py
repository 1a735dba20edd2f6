"""
Command line entry point.

Meant to be called by cron, systemd timers or PostgreSQL's archive_command:

    pgbackup full                   # dump, upload, apply retention
    pgbackup schema                 # schema-only dump, upload, apply retention
    pgbackup wal pg_wal/000000010000000000000001
    pgbackup retention              # tiered retention pass only
    pgbackup wal-retention          # age based WAL retention only
    pgbackup list                   # list stored backups
    pgbackup schedule               # next fire time of each schedule

Exit codes: 0 success, 1 failed run, 2 configuration error.
"""

import sys
import json
import argparse
import logging
from typing import List, Optional

from . import configure_logging
from .config import load_config
from .errors import ConfigurationError, StorageError
from .schedule import next_fire_times
from .backup.executor import BackupExecutor


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='pgbackup', description='PostgreSQL backup and retention')
    parser.add_argument('--json', action='store_true', help='Print the run report as JSON')
    parser.add_argument('--log-level', help='Override BACKUP_LOG_LEVEL')

    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('full', help='Full dump, upload and retention')
    subparsers.add_parser('schema', help='Schema-only dump, upload and retention')
    wal = subparsers.add_parser('wal', help='Archive and upload a WAL segment')
    wal.add_argument('segment', help='Path of the WAL segment')
    subparsers.add_parser('retention', help='Apply the tiered retention policy')
    subparsers.add_parser('wal-retention', help='Delete WAL segments past their retention')
    subparsers.add_parser('list', help='List stored backups')
    subparsers.add_parser('schedule', help='Show the next fire time of each schedule')
    return parser


def _print(payload, as_json: bool):
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
        return
    if isinstance(payload, dict) and 'operation' in payload:
        print(f"{payload['operation']}: {payload['state']}")
        for result in payload['results']:
            print(f"  - {result['message']}")
        if payload['retention']:
            retention = payload['retention']
            print(f"  retention: kept {len(retention['kept'])}, deleted {len(retention['deleted'])}, "
                  f"failed {len(retention['failed'])}")
        if payload['error']:
            print(f"  error: {payload['error']}")
    else:
        for line in payload:
            print(line)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(args.log_level or config.logging.level, config.logging.directory)

    if args.command == 'schedule':
        times = next_fire_times(config.schedule.as_dict())
        if args.json:
            _print({tier: t.isoformat() if t else None for tier, t in times.items()}, True)
        else:
            _print([f"{tier}: {t.isoformat() if t else 'never'}" for tier, t in times.items()], False)
        return EXIT_OK

    try:
        executor = BackupExecutor(config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    if args.command == 'list':
        try:
            files = sorted(executor.storage.list_files(), key=lambda f: f.last_modified, reverse=True)
        except StorageError as e:
            logger.error(f"Failed to list backups: {e}")
            return EXIT_FAILED
        if args.json:
            _print([f.to_dict() for f in files], True)
        else:
            _print([
                f"{f.file_name} ({f.size_bytes / 1024 / 1024:.2f} MB, {f.backup_type.value}, "
                f"{f.last_modified.strftime('%Y-%m-%d %H:%M:%S UTC')})"
                for f in files
            ] or ['(none)'], False)
        return EXIT_OK

    if args.command == 'full':
        report = executor.run_full()
    elif args.command == 'schema':
        report = executor.run_schema()
    elif args.command == 'wal':
        report = executor.run_wal_archive(args.segment)
    elif args.command == 'retention':
        report = executor.run_retention()
    else:
        report = executor.run_wal_retention()

    _print(report.to_dict(), args.json)
    return EXIT_OK if report.success else EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
