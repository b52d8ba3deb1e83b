"""Persistent sync state.

Two small JSON files make up the durable state of a project:

* the version store (``.tncversions``) maps every synced relative path to
  its last fingerprint, storage URL and version number;
* the push record (``.tnc/.tncpush.json``) remembers the remote revision of
  the last successful push so the next push can link to it.

Both are read once at the start of a command and written at most once at
the end of a successful sync. There is no locking; only one sync may run
against a project at a time.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..exceptions import TncStateError

logger = logging.getLogger(__name__)


@dataclass
class VersionRecord:
    """Last synced state of one relative path."""

    hash: Optional[str]
    """Fingerprint at the time of the sync"""

    url: Optional[str] = ""
    """Storage URL of the uploaded content"""

    version: int = 1
    """Starts at 1, increments with every successful changed upload"""

    def to_dict(self) -> dict[str, Any]:
        return {"hash": self.hash, "url": self.url, "version": self.version}

    @classmethod
    def from_value(cls, value: Any) -> "VersionRecord":
        """Create a record from a stored value.

        Older clients stored a bare hash string; it is read as version 1
        with an empty URL.
        """
        if isinstance(value, str):
            return cls(hash=value, url="", version=1)
        if not isinstance(value, dict):
            raise TypeError(f"expected object or string, got {type(value).__name__}")
        return cls(
            hash=value.get("hash"),
            url=value.get("url"),
            version=int(value.get("version") or 1),
        )


VersionMap = dict[str, VersionRecord]


def _write_json(path: Path, data: Any) -> None:
    """Write JSON through a temporary file and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)


class VersionStore:
    """Loads and saves the version map of a project."""

    def __init__(self, path: Path):
        """Initialize version store.

        Args:
            path: Location of the versions file
        """
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> VersionMap:
        """Read the version map.

        A missing file is a valid first-run state and yields an empty map.
        Bare-string entries are upgraded in memory only; the file is
        rewritten by the next ``save()``.

        Returns:
            Mapping of relative path to VersionRecord

        Raises:
            TncStateError: If the file exists but is not a valid version map
        """
        if not self.path.exists():
            logger.debug("No version store at %s", self.path)
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError("top-level value must be an object")
            versions = {
                path: VersionRecord.from_value(value) for path, value in data.items()
            }
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise TncStateError(f"Malformed version store {self.path}: {e}") from e

        logger.debug("Loaded %d version record(s) from %s", len(versions), self.path)
        return versions

    def save(self, versions: VersionMap) -> None:
        """Overwrite the versions file with the full map."""
        _write_json(
            self.path, {path: record.to_dict() for path, record in versions.items()}
        )
        logger.debug("Saved %d version record(s) to %s", len(versions), self.path)


@dataclass
class PushRecord:
    """Remote identifiers of the most recent successful push."""

    version: int
    pushed_at: str
    room_id: str
    pushed_by: str
    project_id: Optional[str]
    folder_id: Optional[str]
    branch: Optional[str] = None
    branch_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "pushedAt": self.pushed_at,
            "roomId": self.room_id,
            "pushedBy": self.pushed_by,
            "projectId": self.project_id,
            "folderId": self.folder_id,
        }
        if self.branch is not None:
            data["branch"] = self.branch
        if self.branch_id is not None:
            data["branchId"] = self.branch_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PushRecord":
        return cls(
            version=int(data.get("version") or 1),
            pushed_at=data.get("pushedAt", ""),
            room_id=data.get("roomId", ""),
            pushed_by=data.get("pushedBy", ""),
            project_id=data.get("projectId"),
            folder_id=data.get("folderId"),
            branch=data.get("branch"),
            branch_id=data.get("branchId"),
        )

    @staticmethod
    def now() -> str:
        """Current time as an ISO-8601 UTC timestamp."""
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class PushRecordStore:
    """Loads and saves the push record of a project."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> Optional[PushRecord]:
        """Read the push record.

        Returns:
            PushRecord, or None if there is none yet (missing file or the
            empty object written by ``tnc init``)

        Raises:
            TncStateError: If the file is not valid JSON
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise TncStateError(f"Malformed push record {self.path}: {e}") from e

        if not isinstance(data, dict) or not data:
            return None
        return PushRecord.from_dict(data)

    def save(self, record: PushRecord) -> None:
        _write_json(self.path, record.to_dict())
        logger.debug("Saved push record (folder %s) to %s", record.folder_id, self.path)
