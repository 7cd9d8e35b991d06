"""
Backup module for pi-backup.

This module handles the core backup functionality including:
- Snapshot key naming
- Deterministic archive creation and safe extraction
- Digest tracking for skipping unchanged directories
- Storage (S3 and local)
- Backup orchestration and restore
"""

from .naming import path_slug, snapshot_key
from .compression import create_archive, create_spooled_archive
from .extraction import extract_archive
from .checksums import load_checksums, save_checksums
from .storage import S3Storage, LocalStorage, create_storage
from .executor import BackupExecutor
from .restore import RestoreManager

__all__ = [
    'path_slug',
    'snapshot_key',
    'create_archive',
    'create_spooled_archive',
    'extract_archive',
    'load_checksums',
    'save_checksums',
    'S3Storage',
    'LocalStorage',
    'create_storage',
    'BackupExecutor',
    'RestoreManager'
]
