"""Utility functions for the TNC sync client."""

import hashlib
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Default server (the original CLI talks to a local backend)
DEFAULT_API_URL: str = "http://localhost:3001"

# Cloudinary signed upload endpoint, formatted with the cloud name
CLOUDINARY_UPLOAD_URL: str = "https://api.cloudinary.com/v1_1/{cloud_name}/auto/upload"

# Remote folder prefix under which every push namespace is created
UPLOAD_ROOT_FOLDER: str = "tnc_uploads"

# Read size used while hashing file contents (1 MB)
HASH_CHUNK_SIZE: int = 1024 * 1024

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds
DEFAULT_TIMEOUT: float = 30.0  # seconds


# =============================================================================
# Timestamp utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written in the push record.

    Args:
        timestamp_str: ISO format timestamp string (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        datetime object in local time or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(timestamp_str)
        if dt.tzinfo is not None:
            return datetime.fromtimestamp(dt.timestamp())
        return dt
    except (ValueError, AttributeError):
        return None


def format_millis(mtime_ns: int) -> str:
    """Format a nanosecond mtime as milliseconds.

    Whole milliseconds are rendered without a fractional part so the tag
    matches fingerprints written by earlier clients.

    Examples:
        >>> format_millis(1_700_000_000_123_000_000)
        '1700000000123'
        >>> format_millis(1_700_000_000_123_500_000)
        '1700000000123.5'
    """
    millis = mtime_ns / 1_000_000
    if millis.is_integer():
        return str(int(millis))
    return repr(millis)


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Identifiers
# =============================================================================


def make_upload_namespace(name: str, now: Optional[float] = None) -> str:
    """Create the folder id under which one push uploads its files.

    The id is an MD5 over the target's base name and the current time in
    milliseconds, so every push gets its own storage namespace.

    Args:
        name: Base name of the pushed file or folder
        now: Optional Unix timestamp (defaults to the current time)

    Returns:
        32 character hex string
    """
    millis = int((time.time() if now is None else now) * 1000)
    return hashlib.md5(f"{name}{millis}".encode()).hexdigest()


def get_machine_id() -> str:
    """Return a stable identifier for this machine.

    Uses /etc/machine-id where available and falls back to a hash of the
    hardware address.
    """
    for candidate in (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id")):
        try:
            value = candidate.read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if value:
            return hashlib.sha256(value.encode()).hexdigest()
    return hashlib.sha256(str(uuid.getnode()).encode()).hexdigest()
