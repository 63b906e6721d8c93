"""Utility functions and constants for installas."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from typing_extensions import TypedDict

# Proxy directory layout constants
VERSION_DIR = "@v"
LIST_FILE = "list"
LATEST_FILE = "@latest"
LOCK_DIR = ".locks"

MOD_SUFFIX = ".mod"
INFO_SUFFIX = ".info"
ZIP_SUFFIX = ".zip"

MANIFEST_FILE = "go.mod"

TEMP_DIR_PREFIX = "installas-"


class VersionInfo(TypedDict):
    """Contents of a <version>.info or @latest file."""

    Version: str  # Canonical version string (e.g., 'v1.0.0')
    Time: str  # RFC 3339 UTC timestamp (e.g., '2024-01-15T10:30:00Z')


def format_rfc3339(dt: Optional[datetime] = None) -> str:
    """Format a datetime as an RFC 3339 UTC timestamp with second precision.

    Args:
        dt: Datetime to format. Naive datetimes are taken to be UTC.
            Defaults to the current time.

    Returns:
        Timestamp string such as '2024-01-15T10:30:00Z'

    Examples:
        >>> format_rfc3339(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))
        '2024-01-15T10:30:00Z'
    """
    if dt is None:
        dt = datetime.now(timezone.utc)
    elif dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Examples:
        >>> parse_rfc3339('2024-01-15T10:30:00Z').year
        2024
    """
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def version_file(version_dir: Union[str, Path], escaped_version: str, suffix: str) -> Path:
    """Return the path of a per-version file in an @v directory.

    Examples:
        >>> version_file('/proxy/example.com/foo/@v', 'v1.0.0', '.info').name
        'v1.0.0.info'
    """
    return Path(version_dir) / f"{escaped_version}{suffix}"
