"""
Naming scheme for remote snapshots.

Keys have the form {hostname}/{slug}/{timestamp}.tar.gz. Timestamps are
fixed-width UTC with dashes instead of colons, so sorting keys as strings
sorts them by time.
"""

import os
from datetime import datetime, timezone
from typing import Optional, Union


TIMESTAMP_FORMAT = '%Y-%m-%dT%H-%M-%SZ'
ISO_TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%SZ'
ARCHIVE_EXTENSION = '.tar.gz'


def path_slug(path: str) -> str:
    """
    Convert a directory path to a slug usable in object keys.

    e.g. "/opt/homeassistant/config" -> "opt-homeassistant-config"

    Paths that already contain "-" can collide with each other; that is a
    known limitation of the scheme.
    """
    cleaned = os.path.normpath(path).lstrip(os.sep)
    return cleaned.replace(os.sep, '-')


def format_timestamp(timestamp: datetime) -> str:
    """
    Format a timestamp for use in a snapshot key.

    Naive datetimes are taken to be UTC already.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """
    Parse a snapshot timestamp.

    Accepts both the key layout (2026-02-11T03-00-00Z) and ISO-8601 with
    colons (2026-02-11T03:00:00Z).

    Returns:
        Timezone-aware UTC datetime

    Raises:
        ValueError: If text matches neither layout
    """
    for fmt in (TIMESTAMP_FORMAT, ISO_TIMESTAMP_FORMAT):
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=timezone.utc)

    raise ValueError(
        f"invalid snapshot timestamp {text!r} (expected e.g. 2026-02-11T03-00-00Z)"
    )


def snapshot_key(hostname: str, path: str, timestamp: Union[datetime, str]) -> str:
    """
    Build the full object key for a snapshot.

    Args:
        hostname: Host the backup belongs to
        path: Local directory path
        timestamp: Snapshot time, or a snapshot timestamp string

    Returns:
        Key like "cherry/opt-homeassistant-config/2026-02-11T03-00-00Z.tar.gz"
    """
    if isinstance(timestamp, str):
        timestamp = parse_timestamp(timestamp)

    return f"{hostname}/{path_slug(path)}/{format_timestamp(timestamp)}{ARCHIVE_EXTENSION}"


def snapshot_prefix(hostname: str, path: Optional[str] = None) -> str:
    """Listing prefix for all snapshots of a host, or of one directory."""
    if not path:
        return f"{hostname}/"
    return f"{hostname}/{path_slug(path)}/"
