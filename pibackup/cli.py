"""
Command-line entry point for pi-backup.

Usage:
    pi-backup [--config PATH] [--dry-run]
    pi-backup [--config PATH] restore list [DIRECTORY]
    pi-backup [--config PATH] restore DIRECTORY [--snapshot TS] [--file PATH] [--dest DIR]
"""

import os
import sys
import logging
import argparse
from typing import List, Optional

from pibackup import __version__, configure_logging
from pibackup.config import Config, ConfigError, check_credentials
from pibackup.backup.checksums import ChecksumError
from pibackup.backup.executor import execute_backup, FAILED
from pibackup.backup.extraction import ExtractionError
from pibackup.backup.restore import RestoreManager, RestoreError
from pibackup.backup.storage import StorageError, create_storage


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pi-backup',
        description='Back up directories to object storage, skipping unchanged ones.'
    )
    parser.add_argument(
        '--config',
        default=os.environ.get(Config.CONFIG_PATH_ENV) or Config.DEFAULT_CONFIG_PATH,
        help='path to config file (default: %(default)s)'
    )
    parser.add_argument('--version', action='version', version=__version__)
    parser.add_argument('-v', '--verbose', action='store_true', help='enable debug logging')
    parser.add_argument('--dry-run', action='store_true', help='log planned uploads without uploading')

    subparsers = parser.add_subparsers(dest='command')

    restore = subparsers.add_parser(
        'restore',
        help='list or restore snapshots',
        usage=(
            'pi-backup restore list [<directory>]\n'
            '       pi-backup restore <directory> [--snapshot <TS>] [--file <path>] [--dest <dir>]'
        )
    )
    restore.add_argument('target', help='"list" or the directory to restore')
    restore.add_argument('directory', nargs='?', help='directory to list snapshots for (with "list")')
    restore.add_argument('--snapshot', help='restore a specific snapshot (timestamp like 2026-02-11T03-00-00Z)')
    restore.add_argument('--file', dest='entry_filter', help='extract only this file from the archive')
    restore.add_argument('--dest', help='extract to alternate location (default: parent of directory)')

    return parser


def run_backup(config: Config, storage, dry_run: bool) -> int:
    """Run a backup of all configured directories and return an exit code."""
    try:
        summary = execute_backup(config, storage, dry_run=dry_run)
    except ChecksumError as e:
        logger.error(f"error loading checksums: {e}")
        return 1

    return 1 if summary[FAILED] else 0


def run_restore(config: Config, storage, args: argparse.Namespace) -> int:
    """Handle the restore subcommand and return an exit code."""
    manager = RestoreManager(storage, config.hostname)

    try:
        if args.target == 'list':
            keys = manager.list_snapshots(args.directory)
            if not keys:
                if args.directory:
                    print(f"No backups found for {args.directory}")
                else:
                    print("No backups found")
                return 0
            for key in keys:
                print(key)
            return 0

        key = manager.restore(
            args.target,
            snapshot=args.snapshot,
            dest_dir=args.dest,
            entry_filter=args.entry_filter
        )
    except (RestoreError, StorageError, ExtractionError) as e:
        logger.error(f"error: {e}")
        return 1

    logger.info(f"restore complete ({key})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'restore' and args.target != 'list' and args.directory:
        parser.error(f"unexpected argument: {args.directory}")

    try:
        config = Config.from_file(args.config)
    except ConfigError as e:
        configure_logging(verbose=args.verbose)
        logger.error(f"error: {e}")
        return 1

    configure_logging(verbose=args.verbose, log_file=config.log_file)

    try:
        access_key = secret_key = None
        if config.requires_credentials:
            access_key, secret_key = check_credentials()

        storage = create_storage(config, access_key=access_key, secret_key=secret_key)
    except (ConfigError, StorageError) as e:
        logger.error(f"error: {e}")
        return 1

    if args.command == 'restore':
        return run_restore(config, storage, args)

    return run_backup(config, storage, args.dry_run)


if __name__ == '__main__':
    sys.exit(main())
