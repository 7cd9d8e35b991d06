"""
Extraction of backup archives onto the filesystem.

Every entry is checked against the destination before anything is written
for it; entries that would land outside the destination abort the whole
extraction.
"""

import os
import zlib
import shutil
import logging
import tarfile
from typing import BinaryIO, List, Optional, Tuple


logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when an archive cannot be extracted."""
    pass


class UnsafePathError(ExtractionError):
    """Raised when an archive entry would be written outside the destination."""
    pass


class EntryNotFoundError(ExtractionError):
    """Raised when a requested entry is not in the archive."""
    pass


def _is_within(path: str, directory: str) -> bool:
    """Check whether path is directory itself or lies below it."""
    if path == directory:
        return True
    prefix = directory if directory.endswith(os.sep) else directory + os.sep
    return path.startswith(prefix)


def _resolve_target(dest_dir: str, member: tarfile.TarInfo) -> str:
    """
    Map an archive entry to its destination path.

    Raises:
        UnsafePathError: If the entry resolves outside dest_dir; only a
            directory entry may resolve to dest_dir itself
    """
    target = os.path.normpath(os.path.join(dest_dir, member.name))

    if target == dest_dir and not member.isdir():
        raise UnsafePathError(f"invalid path in archive: {member.name}")
    if not _is_within(target, dest_dir):
        raise UnsafePathError(f"invalid path in archive: {member.name}")

    return target


def _check_real_parent(dest_dir: str, target: str, name: str):
    """Refuse to write through a symlinked parent that leads out of dest_dir."""
    real_parent = os.path.realpath(os.path.dirname(target))
    if not _is_within(real_parent, os.path.realpath(dest_dir)):
        raise UnsafePathError(f"invalid path in archive (symlink escape): {name}")


def _remove_existing(target: str):
    """Remove a file or symlink in the way of an entry. Directories are kept."""
    if os.path.islink(target) or (os.path.lexists(target) and not os.path.isdir(target)):
        os.remove(target)


def _extract_member(tar: tarfile.TarFile, member: tarfile.TarInfo, target: str,
                    dest_dir: str, deferred_dirs: List[Tuple[str, int]]):
    """Write a single entry. Unsupported entry types are skipped."""
    if not (member.isdir() or member.isreg() or member.issym()):
        logger.debug(f"Skipping unsupported entry type: {member.name}")
        return

    # "./" entry: the destination itself, whose parent is outside by definition
    if target == dest_dir:
        os.makedirs(target, exist_ok=True)
        deferred_dirs.append((target, member.mode))
        return

    _check_real_parent(dest_dir, target, member.name)

    if member.isdir():
        if os.path.islink(target):
            os.remove(target)
        os.makedirs(target, exist_ok=True)
        deferred_dirs.append((target, member.mode))
        return

    os.makedirs(os.path.dirname(target), exist_ok=True)
    _remove_existing(target)

    if member.issym():
        os.symlink(member.linkname, target)
        return

    source = tar.extractfile(member)
    with source, open(target, 'wb') as dst:
        shutil.copyfileobj(source, dst)
    os.chmod(target, member.mode)


def extract_archive(fileobj: BinaryIO, dest_dir: str, entry_filter: Optional[str] = None):
    """
    Extract a tar.gz archive into a directory.

    Args:
        fileobj: Binary file object positioned at the start of the archive
        dest_dir: Directory the archive's top-level entry is created in
        entry_filter: If given, extract only the entry with exactly this path

    Raises:
        UnsafePathError: If an entry would resolve outside dest_dir
        EntryNotFoundError: If entry_filter does not match any entry
        ExtractionError: If the archive is corrupt or a write fails
    """
    dest_dir = os.path.normpath(os.path.abspath(dest_dir))
    if entry_filter:
        entry_filter = entry_filter.rstrip('/')

    found = False
    deferred_dirs = []

    try:
        with tarfile.open(fileobj=fileobj, mode='r:gz') as tar:
            for member in tar:
                target = _resolve_target(dest_dir, member)

                if entry_filter and member.name != entry_filter:
                    continue
                found = True

                _extract_member(tar, member, target, dest_dir, deferred_dirs)

                if entry_filter:
                    break
    except ExtractionError:
        raise
    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise ExtractionError(f"reading archive: {e}") from e
    except OSError as e:
        raise ExtractionError(f"extracting archive: {e}") from e

    if entry_filter and not found:
        raise EntryNotFoundError(f"file {entry_filter!r} not found in archive")

    # Directory modes go on last, deepest first
    try:
        for path, mode in sorted(deferred_dirs, reverse=True):
            os.chmod(path, mode)
    except OSError as e:
        raise ExtractionError(f"setting permissions on {path}: {e}") from e
