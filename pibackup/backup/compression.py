"""
Deterministic tar.gz archives of directory trees.

Archiving the same unchanged tree twice produces byte-identical output:
entries are emitted in sorted order, tar headers only carry stable metadata
and the gzip header has no timestamp or filename. The backup digest relies
on this.

Only directories, regular files and symlinks are archived. FIFOs, sockets
and device nodes are skipped with a warning rather than stored or failing
the archive.
"""

import os
import gzip
import stat
import hashlib
import logging
import tarfile
import tempfile
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional, Tuple


logger = logging.getLogger(__name__)

COMPRESS_LEVEL = 9
CHUNK_SIZE = 1024 * 1024


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


class ArchiveEntry:
    """
    One filesystem node to be archived.

    Attributes:
        path: Path on disk
        arcname: Path inside the archive, relative to the root's parent
        st: lstat() result of the node
    """

    __slots__ = ('path', 'arcname', 'st')

    def __init__(self, path: str, arcname: str, st: os.stat_result):
        self.path = path
        self.arcname = arcname
        self.st = st

    def __repr__(self):
        return f"ArchiveEntry({self.arcname!r})"

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.st.st_mode)

    def is_file(self) -> bool:
        return stat.S_ISREG(self.st.st_mode)

    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.st.st_mode)


def iter_entries(root_dir: str) -> Iterator[ArchiveEntry]:
    """
    Walk a directory tree depth-first in sorted order.

    The root itself is the first entry and its basename is the first
    segment of every archive name. Symlinks are yielded but never followed.

    Raises:
        OSError: If any node cannot be listed or stat'ed
    """
    root = os.path.normpath(os.path.abspath(root_dir))
    parent = os.path.dirname(root)

    def walk(path: str) -> Iterator[ArchiveEntry]:
        entry = ArchiveEntry(path, os.path.relpath(path, parent), os.lstat(path))
        yield entry

        if entry.is_dir():
            for name in sorted(os.listdir(path)):
                yield from walk(os.path.join(path, name))

    return walk(root)


def _tarinfo_for(entry: ArchiveEntry) -> Optional[tarfile.TarInfo]:
    """Build a tar header with only the metadata that is stable across runs."""
    info = tarfile.TarInfo(entry.arcname)
    info.mode = stat.S_IMODE(entry.st.st_mode)
    info.mtime = int(entry.st.st_mtime)
    info.uid = entry.st.st_uid
    info.gid = entry.st.st_gid
    info.uname = ''
    info.gname = ''

    if entry.is_dir():
        info.type = tarfile.DIRTYPE
    elif entry.is_file():
        info.type = tarfile.REGTYPE
        info.size = entry.st.st_size
    elif entry.is_symlink():
        info.type = tarfile.SYMTYPE
        info.linkname = os.readlink(entry.path)
    else:
        return None

    return info


def create_archive(root_dir: str, fileobj: BinaryIO):
    """
    Write a deterministic tar.gz archive of a directory tree.

    Paths inside the archive are relative to root_dir's parent, so the
    archive extracts back into the original location.

    Args:
        root_dir: Directory to archive
        fileobj: Binary file object the compressed archive is written to

    Raises:
        CompressionError: If any node cannot be read or a file changes size
            while it is copied; nothing partial is considered valid
    """
    try:
        with gzip.GzipFile(filename='', mode='wb', fileobj=fileobj,
                           compresslevel=COMPRESS_LEVEL, mtime=0) as gz:
            with tarfile.open(fileobj=gz, mode='w', format=tarfile.PAX_FORMAT) as tar:
                for entry in iter_entries(root_dir):
                    info = _tarinfo_for(entry)
                    if info is None:
                        logger.warning(f"Skipping special file: {entry.path}")
                        continue

                    if info.isreg():
                        with open(entry.path, 'rb') as f:
                            tar.addfile(info, f)
                            if os.fstat(f.fileno()).st_size != info.size:
                                raise CompressionError(
                                    f"File changed while archiving: {entry.path}"
                                )
                    else:
                        tar.addfile(info)
    except OSError as e:
        raise CompressionError(f"Failed to create archive of {root_dir}: {e}") from e


def file_digest(path: str) -> str:
    """Return the hex SHA-256 digest of a file."""
    h = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            h.update(chunk)
    return h.hexdigest()


@contextmanager
def create_spooled_archive(directory: str, temp_dir: Optional[str] = None) -> Iterator[Tuple[str, str]]:
    """
    Archive a directory into a temporary file and hash it.

    The temporary file is removed when the context exits, whatever the
    outcome.

    Args:
        directory: Directory to archive
        temp_dir: Where to create the temporary file (system default if None)

    Yields:
        Tuple of (archive_path, sha256 hex digest)

    Raises:
        CompressionError: If directory is not a readable directory or
            archiving fails
    """
    try:
        if not stat.S_ISDIR(os.stat(directory).st_mode):
            raise CompressionError(f"{directory} is not a directory")
    except OSError as e:
        raise CompressionError(f"Failed to access directory: {e}") from e

    try:
        fd, archive_path = tempfile.mkstemp(prefix='pi-backup-', suffix='.tar.gz', dir=temp_dir)
    except OSError as e:
        raise CompressionError(f"Failed to create temporary archive file: {e}") from e

    try:
        with os.fdopen(fd, 'wb') as f:
            create_archive(directory, f)

        try:
            digest = file_digest(archive_path)
        except OSError as e:
            raise CompressionError(f"Failed to hash archive: {e}") from e

        yield archive_path, digest
    finally:
        try:
            os.remove(archive_path)
        except FileNotFoundError:
            pass
