"""Merge conflict detection for pushes.

There is no real merge. A conflict is a file whose fingerprint in the
latest remote push differs from the local one; the only policy,
``LOCAL_ALWAYS_WINS``, reports such files and pushes the local version
anyway.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..api import TncClient
from ..exceptions import TncAPIError
from ..output import OutputFormatter
from .scanner import TreeNode, iter_files

logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    """How conflicting files are resolved."""

    LOCAL_ALWAYS_WINS = "local_always_wins"
    """Keep the local version, overwriting other users' changes"""


@dataclass
class MergeConflict:
    """A file changed both locally and in the cloud."""

    path: str
    local_hash: Optional[str]
    remote_hash: Optional[str]
    message: str = "File changed by another user in cloud"


class ConflictDetector:
    """Compares local fingerprints with the latest remote push of a branch."""

    def __init__(self, client: TncClient, room_id: str, branch: Optional[str]):
        self.client = client
        self.room_id = room_id
        self.branch = branch

    def detect(self, tree: list[TreeNode]) -> list[MergeConflict]:
        """Return the files whose remote hash differs from the local one.

        A failure to list the remote files is logged and treated as "no
        conflicts".
        """
        try:
            cloud_files = self.client.get_cloud_files(self.room_id, self.branch)
        except TncAPIError as e:
            logger.warning("Could not fetch cloud files: %s", e)
            return []

        remote_hashes = {
            f.get("path"): f.get("hash") for f in cloud_files if isinstance(f, dict)
        }
        conflicts = []
        for node in iter_files(tree):
            if node.relative_path not in remote_hashes:
                continue
            remote_hash = remote_hashes[node.relative_path]
            if remote_hash != node.fingerprint:
                conflicts.append(
                    MergeConflict(node.relative_path, node.fingerprint, remote_hash)
                )
        return conflicts


def resolve_conflicts(
    conflicts: list[MergeConflict],
    policy: ConflictPolicy,
    output: OutputFormatter,
) -> bool:
    """Apply a conflict policy.

    Args:
        conflicts: Conflicts found by ConflictDetector
        policy: Policy to apply
        output: Output formatter for the report

    Returns:
        True if the push may continue
    """
    if not conflicts:
        return True

    output.warning("\nMerge conflicts detected:")
    for conflict in conflicts:
        output.warning(f"  {conflict.path} - {conflict.message}")

    if policy == ConflictPolicy.LOCAL_ALWAYS_WINS:
        output.info("Auto-resolving: using your local version for all conflicts")
        output.info("Note: other users' changes will be overwritten")
        logger.info("Resolved %d conflict(s) with %s", len(conflicts), policy.value)
        return True

    raise ValueError(f"Unsupported conflict policy: {policy}")
