"""
Persisted digests of the last uploaded archive per directory.

The file is a flat JSON object mapping directory slug to the SHA-256 hex
digest of the archive last uploaded for it.
"""

import os
import json
import tempfile
from typing import Dict


class ChecksumError(Exception):
    """Raised when the digest map cannot be read or written."""
    pass


def load_checksums(path: str) -> Dict[str, str]:
    """
    Read a slug -> digest map from a JSON file.

    Args:
        path: Path to the JSON file

    Returns:
        The stored map, or an empty dict if the file does not exist

    Raises:
        ChecksumError: If the file exists but cannot be read or parsed
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        raise ChecksumError(f"Failed to load checksums from {path}: {e}") from e

    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise ChecksumError(f"Invalid checksums file {path}: expected an object of strings")

    return data


def save_checksums(path: str, checksums: Dict[str, str]):
    """
    Write a slug -> digest map to a JSON file.

    The map is written to a temporary file next to path and renamed over
    it, so readers never see a partially written file.

    Args:
        path: Path to the JSON file
        checksums: Map to persist

    Raises:
        ChecksumError: If the file cannot be written
    """
    directory = os.path.dirname(os.path.abspath(path))

    try:
        os.makedirs(directory, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix='.checksums-', suffix='.tmp', dir=directory)
    except OSError as e:
        raise ChecksumError(f"Failed to save checksums to {path}: {e}") from e

    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(checksums, f, indent=2, sort_keys=True)
            f.write('\n')
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, path)
    except OSError as e:
        try:
            os.remove(temp_path)
        except OSError:
            pass
        raise ChecksumError(f"Failed to save checksums to {path}: {e}") from e
