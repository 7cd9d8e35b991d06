"""
Snapshot listing, selection and restore.

There is no index of snapshots: the object keys are the index. Snapshot
timestamps sort lexically, so the last key in sorted order is the most
recent snapshot of a directory.
"""

import os
import logging
import tempfile
from typing import List, Optional

from .naming import snapshot_key, snapshot_prefix
from .extraction import extract_archive


logger = logging.getLogger(__name__)


class RestoreError(Exception):
    """Raised when a restore cannot be carried out."""
    pass


class SnapshotNotFoundError(RestoreError):
    """Raised when no snapshot exists for a directory."""
    pass


class RestoreManager:
    """
    Resolves snapshot keys for a host and restores them from a blob store.
    """

    def __init__(self, storage, hostname: str):
        """
        Args:
            storage: Blob store with get() and list_objects()
            hostname: Host whose snapshots are listed and restored
        """
        self.storage = storage
        self.hostname = hostname

    def list_snapshots(self, directory: Optional[str] = None) -> List[str]:
        """
        List snapshot keys, oldest first.

        Args:
            directory: Restrict the listing to one directory (all if None)

        Returns:
            Sorted list of object keys

        Raises:
            StorageError: If listing fails
        """
        prefix = snapshot_prefix(self.hostname, directory)
        return sorted(obj['Key'] for obj in self.storage.list_objects(prefix))

    def latest_snapshot(self, directory: str) -> str:
        """
        Return the key of the most recent snapshot of a directory.

        Raises:
            SnapshotNotFoundError: If the directory has no snapshots
        """
        keys = self.list_snapshots(directory)
        if not keys:
            raise SnapshotNotFoundError(f"no backups found for {directory}")
        return keys[-1]

    def resolve_snapshot(self, directory: str, snapshot: Optional[str] = None) -> str:
        """
        Determine the key to restore.

        An explicit snapshot timestamp is turned into a key without checking
        that the object exists; that surfaces when it is downloaded.

        Raises:
            RestoreError: If the snapshot timestamp is malformed
            SnapshotNotFoundError: If no snapshot is given and none exist
        """
        if snapshot:
            try:
                return snapshot_key(self.hostname, directory, snapshot)
            except ValueError as e:
                raise RestoreError(str(e)) from e

        return self.latest_snapshot(directory)

    def restore(self, directory: str, snapshot: Optional[str] = None,
                dest_dir: Optional[str] = None, entry_filter: Optional[str] = None) -> str:
        """
        Download a snapshot and extract it.

        Args:
            directory: Directory the snapshot was taken of
            snapshot: Snapshot timestamp (latest if None)
            dest_dir: Where to extract (defaults to the parent of directory,
                which puts the directory back where it was)
            entry_filter: Extract only this archive entry, e.g. "config/secrets.yaml"

        Returns:
            The restored object key

        Raises:
            RestoreError: If the snapshot cannot be resolved
            StorageError: If the download fails
            ExtractionError: If the archive cannot be extracted
        """
        key = self.resolve_snapshot(directory, snapshot)

        if not dest_dir:
            dest_dir = os.path.dirname(os.path.normpath(os.path.abspath(directory)))

        with tempfile.TemporaryFile(prefix='pi-restore-', suffix='.tar.gz') as tmp:
            logger.info(f"downloading {self.storage.describe(key)}")
            self.storage.get(key, tmp)
            tmp.seek(0)

            logger.info(f"extracting to {dest_dir}")
            extract_archive(tmp, dest_dir, entry_filter)

        return key
