"""Directory scanning utilities for sync operations."""

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .ignore import IgnoreMatcher

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    """Kind of a scanned filesystem entry."""

    FILE = "file"
    FOLDER = "folder"


@dataclass
class TreeNode:
    """One file or folder of a scanned tree."""

    name: str
    """Base name of the entry"""

    kind: NodeKind
    """File or folder"""

    path: Path
    """Absolute path on disk"""

    relative_path: str
    """Path relative to the sync root (forward slashes on all platforms)"""

    size: int = 0
    """File size in bytes (0 for folders)"""

    mtime: float = 0.0
    """Last modification time at scan time (Unix timestamp)"""

    children: list["TreeNode"] = field(default_factory=list)
    """Child nodes in directory read order (folders only)"""

    fingerprint: Optional[str] = None
    """Content hash, filled in by the diff engine"""

    changed: bool = False
    """Set by the diff engine"""

    remote_url: Optional[str] = None
    """Storage URL, filled in by the sync engine"""

    version: Optional[int] = None
    """Version number, filled in by the sync engine"""

    @property
    def is_file(self) -> bool:
        return self.kind == NodeKind.FILE

    @property
    def is_folder(self) -> bool:
        return self.kind == NodeKind.FOLDER

    @classmethod
    def from_path(cls, path: Path, root: Path) -> "TreeNode":
        """Create a file node from a path.

        Args:
            path: Absolute path to the file
            root: Sync root used for the relative path

        Returns:
            TreeNode instance
        """
        stat = path.stat()
        return cls(
            name=path.name,
            kind=NodeKind.FILE,
            path=path,
            relative_path=path.relative_to(root).as_posix(),
            size=stat.st_size,
            mtime=stat.st_mtime,
        )

    def to_dict(self) -> dict[str, Any]:
        """Render the node in the wire format of the metadata service."""
        data: dict[str, Any] = {
            "name": self.name,
            "type": self.kind.value,
            "path": self.relative_path,
            "hash": self.fingerprint,
            "changed": self.changed,
        }
        if self.is_folder:
            data["children"] = [child.to_dict() for child in self.children]
        else:
            data["size"] = self.size
            data["url"] = self.remote_url
            data["version"] = self.version
        return data


def iter_nodes(nodes: list[TreeNode]) -> Iterator[TreeNode]:
    """Yield every node depth-first, parents before their children."""
    for node in nodes:
        yield node
        if node.is_folder:
            yield from iter_nodes(node.children)


def iter_files(nodes: list[TreeNode]) -> Iterator[TreeNode]:
    """Yield every file node depth-first in scan order."""
    for node in iter_nodes(nodes):
        if node.is_file:
            yield node


class DirectoryScanner:
    """Scans a directory into an ordered tree of TreeNode objects.

    Examples:
        >>> scanner = DirectoryScanner(IgnoreMatcher(["build/**"]))
        >>> tree = scanner.scan(Path("/project"))
        >>> # build/ and everything below it is skipped
    """

    def __init__(self, ignore: Optional[IgnoreMatcher] = None):
        """Initialize directory scanner.

        Args:
            ignore: Ignore rules applied to root-relative paths
        """
        self.ignore = ignore or IgnoreMatcher()
        self.ignored: list[str] = []

    def should_ignore(self, relative_path: str) -> bool:
        """Check if a root-relative path is excluded, logging each skip."""
        rule = self.ignore.match(relative_path)
        if rule is None:
            return False
        logger.info("Ignored: %s (rule %r)", relative_path, rule.pattern)
        self.ignored.append(relative_path)
        return True

    def scan(self, root: Path) -> list[TreeNode]:
        """Recursively scan ``root``.

        The root itself is not part of the result; the returned list holds
        its direct children.

        Args:
            root: Directory to scan

        Returns:
            List of TreeNode objects in directory read order

        Raises:
            OSError: If the root (or any non-ignored child) cannot be listed
                or stat'ed
        """
        self.ignored = []
        return self._scan_directory(root, root)

    def scan_path(self, target: Path, root: Path) -> list[TreeNode]:
        """Scan a push target that lives inside ``root``.

        A directory target yields the tree of its children; a file target
        yields a single file node. Relative paths are always computed
        against ``root``.

        Args:
            target: File or directory to scan
            root: Sync root

        Returns:
            List of TreeNode objects (empty if the target is ignored)
        """
        self.ignored = []
        target = target.resolve()
        root = root.resolve()

        if target == root:
            return self._scan_directory(root, root)

        relative_path = target.relative_to(root).as_posix()
        if self.should_ignore(relative_path):
            return []
        if target.is_dir():
            return self._scan_directory(target, root)
        return [TreeNode.from_path(target, root)]

    def _scan_directory(self, directory: Path, root: Path) -> list[TreeNode]:
        nodes: list[TreeNode] = []

        with os.scandir(directory) as entries:
            for entry in entries:
                item = Path(entry.path)
                relative_path = item.relative_to(root).as_posix()

                if self.should_ignore(relative_path):
                    continue

                if entry.is_symlink() and entry.is_dir():
                    logger.info("Skipping symlinked directory: %s", relative_path)
                    self.ignored.append(relative_path)
                    continue

                if entry.is_dir(follow_symlinks=False):
                    nodes.append(
                        TreeNode(
                            name=entry.name,
                            kind=NodeKind.FOLDER,
                            path=item,
                            relative_path=relative_path,
                            mtime=entry.stat().st_mtime,
                            children=self._scan_directory(item, root),
                        )
                    )
                else:
                    nodes.append(TreeNode.from_path(item, root))

        return nodes
