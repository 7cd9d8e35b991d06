"""
Backup executor - orchestrates a backup run over all configured directories.

Workflow per directory:
1. Archive the directory into a temporary file and hash it
2. Skip if the digest matches the last uploaded one
3. Upload to the blob store under the snapshot key
4. Record the new digest and persist the digest map immediately
5. Remove the temporary archive

A failure in one directory does not stop the others; the summary lists
which directories failed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pibackup.config import Config
from .naming import path_slug, snapshot_key
from .compression import create_spooled_archive, CompressionError
from .checksums import load_checksums, save_checksums, ChecksumError
from .storage import StorageError


logger = logging.getLogger(__name__)

UPLOADED = 'uploaded'
SKIPPED = 'skipped'
PLANNED = 'planned'
FAILED = 'failed'


class BackupExecutor:
    """
    Orchestrates the backup workflow for every configured directory.
    """

    def __init__(self, config: Config, storage, dry_run: bool = False, temp_dir: Optional[str] = None):
        """
        Initialize backup executor.

        Args:
            config: Validated configuration
            storage: Blob store with a put(key, local_path) method
            dry_run: Only report planned uploads; touch neither storage nor digests
            temp_dir: Directory for temporary archives (system default if None)
        """
        self.config = config
        self.storage = storage
        self.dry_run = dry_run
        self.temp_dir = temp_dir
        self.checksums = None
        self.logs = []

    def execute(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Back up all configured directories, one at a time, in order.

        Args:
            now: Snapshot time shared by every directory in this run
                (defaults to the current UTC time)

        Returns:
            Dict with summary of the run:
            {
                'uploaded': List[str],
                'skipped': List[str],
                'planned': List[str],
                'failed': List[str],
                'warnings': List[str],
                'logs': List[str]
            }

        Raises:
            ChecksumError: If the digest map cannot be loaded
        """
        if now is None:
            now = datetime.now(timezone.utc)

        self.checksums = load_checksums(self.config.checksums_path)

        summary = {
            UPLOADED: [],
            SKIPPED: [],
            PLANNED: [],
            FAILED: [],
            'warnings': []
        }

        for directory in self.config.directories:
            outcome = self.backup_directory(directory, now, summary['warnings'])
            summary[outcome].append(directory)

        if summary[FAILED]:
            self._log(
                f"failed to back up {len(summary[FAILED])} directories: {summary[FAILED]}",
                logging.ERROR
            )

        summary['logs'] = self.logs
        return summary

    def backup_directory(self, directory: str, now: datetime, warnings: Optional[list] = None) -> str:
        """
        Back up a single directory.

        Args:
            directory: Directory to back up
            now: Snapshot time
            warnings: Optional list collecting non-fatal problems

        Returns:
            One of 'uploaded', 'skipped', 'planned' or 'failed'
        """
        if self.checksums is None:
            self.checksums = load_checksums(self.config.checksums_path)

        key = snapshot_key(self.config.hostname, directory, now)
        slug = path_slug(directory)
        target = self.storage.describe(key)

        try:
            with create_spooled_archive(directory, self.temp_dir) as (archive_path, digest):
                if self.checksums.get(slug) == digest:
                    if self.dry_run:
                        self._log(f"[dry-run] would skip {directory} (unchanged)")
                    else:
                        self._log(f"skipping {directory} (unchanged)")
                    return SKIPPED

                if self.dry_run:
                    self._log(f"[dry-run] would upload {directory} -> {target}")
                    return PLANNED

                self._log(f"backing up {directory} -> {target}")
                self.storage.put(key, archive_path)

        except CompressionError as e:
            self._log(f"error creating archive for {directory}: {e}", logging.ERROR)
            return FAILED
        except StorageError as e:
            self._log(f"error backing up {directory}: {e}", logging.ERROR)
            return FAILED

        self.checksums[slug] = digest
        try:
            save_checksums(self.config.checksums_path, self.checksums)
        except ChecksumError as e:
            message = f"failed to save checksums: {e}"
            self._log(f"warning: {message}", logging.WARNING)
            if warnings is not None:
                warnings.append(message)

        self._log(f"completed {directory}")
        return UPLOADED

    def _log(self, message: str, level: int = logging.INFO):
        """
        Log a message and keep it for the run summary.

        Args:
            message: Log message
            level: Logging level
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def execute_backup(config: Config, storage, dry_run: bool = False) -> Dict[str, Any]:
    """
    Run a backup of every configured directory.

    Returns:
        Summary dict from BackupExecutor.execute()
    """
    executor = BackupExecutor(config, storage, dry_run=dry_run)
    return executor.execute()
