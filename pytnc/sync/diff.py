"""Change detection against the version store."""

import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from .hasher import ContentHasher, SkippedEntry, folder_fingerprint
from .scanner import TreeNode, iter_files
from .state import VersionMap, VersionRecord

logger = logging.getLogger(__name__)


@dataclass
class DiffResult:
    """A diffed tree plus everything the hasher had to skip."""

    tree: list[TreeNode]
    skipped: list[SkippedEntry] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(node.changed for node in self.tree)

    def changed_files(self) -> list[TreeNode]:
        return [node for node in iter_files(self.tree) if node.changed]


@dataclass
class ChangeSummary:
    """File counts reported by ``tnc status``."""

    new: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.modified)

    def to_dict(self) -> dict:
        return {
            "new": len(self.new),
            "modified": len(self.modified),
            "unchanged": len(self.unchanged),
            "new_files": self.new,
            "modified_files": self.modified,
        }


class DiffEngine:
    """Marks every node of a scanned tree as changed or unchanged.

    A file is unchanged only if the version store has a record for its
    relative path and the recorded hash equals the freshly computed
    fingerprint. Files without a record, and files whose fingerprint could
    not be computed, are changed. A folder is changed if any of its
    descendants is.
    """

    def __init__(self, hasher: ContentHasher):
        self.hasher = hasher

    def diff(self, tree: list[TreeNode], versions: VersionMap) -> DiffResult:
        """Diff a scanned tree against the version store.

        The input tree is not modified.

        Args:
            tree: Nodes returned by the scanner
            versions: Mapping loaded from the version store

        Returns:
            DiffResult holding a new, diffed tree
        """
        skipped: list[SkippedEntry] = []
        diffed = [self._diff_node(node, versions, skipped) for node in tree]
        for entry in skipped:
            logger.warning("Could not hash %s: %s", entry.relative_path, entry.reason)
        return DiffResult(tree=diffed, skipped=skipped)

    def _diff_node(
        self, node: TreeNode, versions: VersionMap, skipped: list[SkippedEntry]
    ) -> TreeNode:
        if node.is_folder:
            children = [
                self._diff_node(child, versions, skipped) for child in node.children
            ]
            fingerprint = folder_fingerprint(
                node.relative_path,
                [(c.name, c.fingerprint) for c in children if c.fingerprint],
            )
            return replace(
                node,
                fingerprint=fingerprint,
                children=children,
                changed=any(child.changed for child in children),
            )

        result = self.hasher.hash_path(node.path)
        if result.fingerprint is None:
            skipped.append(
                SkippedEntry(node.relative_path, result.error or "unreadable")
            )

        changed = _is_changed(result.fingerprint, versions.get(node.relative_path))
        if changed:
            logger.debug("Changed: %s", node.relative_path)
        return replace(node, fingerprint=result.fingerprint, changed=changed)


def _is_changed(fingerprint: Optional[str], record: Optional[VersionRecord]) -> bool:
    if fingerprint is None or record is None:
        return True
    return record.hash != fingerprint


def summarize(result: DiffResult, versions: VersionMap) -> ChangeSummary:
    """Count new, modified and unchanged files of a diffed tree."""
    summary = ChangeSummary()
    for node in iter_files(result.tree):
        if node.relative_path not in versions:
            summary.new.append(node.relative_path)
        elif node.changed:
            summary.modified.append(node.relative_path)
        else:
            summary.unchanged.append(node.relative_path)
    return summary
