"""On-disk layout of a TNC project.

A project is a directory containing a ``.tnc/`` folder::

    <root>/
        .ignoretnc              ignore patterns
        .tncversions            version store
        .tnc/.tncmeta.json      project metadata written by ``tnc init``
        .tnc/.tncpush.json      push record of the last successful push

All paths are derived from an explicit root so that nothing in the sync core
depends on the process working directory.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import TncConfigError, TncStateError
from .sync.ignore import IGNORE_FILE_NAME, IgnoreMatcher, load_ignore_file

logger = logging.getLogger(__name__)

TNC_DIR_NAME = ".tnc"
META_FILE_NAME = ".tncmeta.json"
PUSH_FILE_NAME = ".tncpush.json"
VERSIONS_FILE_NAME = ".tncversions"
VERSIONS_BACKUP_NAME = ".tncversions.backup"

# The client's own state is never part of a push
BUILTIN_IGNORE_PATTERNS = [
    f"{TNC_DIR_NAME}/**",
    VERSIONS_FILE_NAME,
    VERSIONS_BACKUP_NAME,
]


@dataclass
class ProjectMeta:
    """Contents of ``.tnc/.tncmeta.json``."""

    project_id: str
    project_name: str = ""
    room_id: Optional[str] = None
    current_branch: str = "main"
    branch: Optional[str] = None
    branch_id: Optional[str] = None
    last_commit: Optional[str] = None
    files: dict[str, Any] = field(default_factory=dict)

    @property
    def active_branch(self) -> str:
        """Branch used for pushes (``branch`` if set, else ``currentBranch``)."""
        return self.branch or self.current_branch

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "projectId": self.project_id,
            "projectName": self.project_name,
            "currentBranch": self.current_branch,
            "roomId": self.room_id,
            "lastCommit": self.last_commit,
            "files": self.files,
        }
        if self.branch is not None:
            data["branch"] = self.branch
        if self.branch_id is not None:
            data["branchId"] = self.branch_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectMeta":
        if "projectId" not in data:
            raise KeyError("projectId")
        return cls(
            project_id=data["projectId"],
            project_name=data.get("projectName", ""),
            room_id=data.get("roomId"),
            current_branch=data.get("currentBranch") or "main",
            branch=data.get("branch"),
            branch_id=data.get("branchId"),
            last_commit=data.get("lastCommit"),
            files=data.get("files") or {},
        )


class Project:
    """Resolves every state file of a project from its root directory."""

    def __init__(self, root: Path):
        self.root = root.resolve()

    @property
    def tnc_dir(self) -> Path:
        return self.root / TNC_DIR_NAME

    @property
    def meta_path(self) -> Path:
        return self.tnc_dir / META_FILE_NAME

    @property
    def push_record_path(self) -> Path:
        return self.tnc_dir / PUSH_FILE_NAME

    @property
    def versions_path(self) -> Path:
        return self.root / VERSIONS_FILE_NAME

    @property
    def versions_backup_path(self) -> Path:
        return self.root / VERSIONS_BACKUP_NAME

    @property
    def ignore_path(self) -> Path:
        return self.root / IGNORE_FILE_NAME

    def is_initialized(self) -> bool:
        return self.meta_path.exists()

    def load_meta(self) -> ProjectMeta:
        """Read the project metadata.

        Raises:
            TncConfigError: If the project has not been initialized
            TncStateError: If the metadata file is malformed
        """
        if not self.meta_path.exists():
            raise TncConfigError("Project not initialized. Run 'tnc init' first.")
        try:
            with open(self.meta_path, encoding="utf-8") as f:
                return ProjectMeta.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            raise TncStateError(f"Malformed project metadata {self.meta_path}: {e}") from e

    def initialize(self, meta: ProjectMeta) -> None:
        """Create ``.tnc/`` with fresh metadata and an empty push record."""
        self.tnc_dir.mkdir(parents=True, exist_ok=True)
        with open(self.meta_path, "w", encoding="utf-8") as f:
            json.dump(meta.to_dict(), f, indent=2)
        with open(self.push_record_path, "w", encoding="utf-8") as f:
            f.write("{}")
        logger.debug("Initialized project %s at %s", meta.project_id, self.root)

    def load_ignore_matcher(self) -> IgnoreMatcher:
        """Return the project's ignore rules plus the built-in state-file rules."""
        patterns = load_ignore_file(self.ignore_path)
        return IgnoreMatcher(BUILTIN_IGNORE_PATTERNS + patterns)

    def relative_path(self, path: Path) -> str:
        """Return ``path`` relative to the project root with forward slashes.

        Raises:
            ValueError: If ``path`` is outside the project
        """
        return path.resolve().relative_to(self.root).as_posix()
