"""Download a pushed folder into the project and adopt its versions."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Optional

from ..api import TncClient
from ..exceptions import TncAPIError, TncInvalidResponseError
from ..output import OutputFormatter
from ..utils import format_size
from .state import VersionMap, VersionRecord, VersionStore

if TYPE_CHECKING:
    from ..project import Project

logger = logging.getLogger(__name__)


@dataclass
class PullStats:
    """Counts reported at the end of a pull."""

    downloaded: int = 0
    skipped: int = 0
    errors: int = 0
    version: int = 1
    tracked: int = 0
    bytes_downloaded: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "downloads": self.downloaded,
            "bytes": self.bytes_downloaded,
            "skips": self.skipped,
            "errors": self.errors,
            "version": self.version,
            "tracked": self.tracked,
        }


class PullEngine:
    """Downloads the files of a remote push and rewrites the version store."""

    def __init__(self, client: TncClient, output: Optional[OutputFormatter] = None):
        self.client = client
        self.output = output or OutputFormatter()

    def pull(
        self, project: Project, room_id: str, version: Optional[int] = None
    ) -> PullStats:
        """Pull the latest (or a numbered) version of a room's project.

        Files that already exist locally with the same size are skipped.
        Individual download failures are counted and do not stop the pull.
        The version store is backed up once to ``.tncversions.backup`` and
        then replaced by the records of the remote tree.

        Args:
            project: Initialized project
            room_id: Room to pull from
            version: Version number, or None for the latest

        Returns:
            PullStats

        Raises:
            TncConfigError: If the project is not initialized
            TncAPIError: If the folder description cannot be fetched
        """
        meta = project.load_meta()
        folder = self.client.get_folder(room_id, meta.project_id, version)
        if not folder:
            raise TncInvalidResponseError("No data found in response")

        content = _root_content(folder)
        remote_version = folder.get("version") if isinstance(folder, dict) else None
        stats = PullStats(version=int(remote_version or 1))
        self.output.info(f"Found version {stats.version} with {len(content)} item(s)")

        if project.versions_path.exists() and not project.versions_backup_path.exists():
            shutil.copyfile(project.versions_path, project.versions_backup_path)
            self.output.info(f"Backup created: {project.versions_backup_path.name}")

        self._download_items(content, project.root.resolve(), stats)

        versions = flatten_versions(content)
        VersionStore(project.versions_path).save(versions)
        stats.tracked = len(versions)

        self._display_summary(stats)
        return stats

    def _download_items(
        self, items: list[dict[str, Any]], root: Path, stats: PullStats
    ) -> None:
        for item in items:
            if item.get("type") == "folder":
                self._download_items(item.get("children") or [], root, stats)
                continue
            if item.get("type") != "file" or not item.get("url"):
                continue

            relative_path = item.get("path") or item.get("name") or ""
            if _is_state_path(relative_path):
                stats.skipped += 1
                continue

            local_path = (root / relative_path).resolve()
            inside = _is_inside_root(relative_path) and local_path.is_relative_to(root)
            if not inside:
                logger.warning("Remote path outside project: %s", relative_path)
                self.output.error(f"Skipping path outside project: {relative_path}")
                stats.errors += 1
                continue

            if local_path.exists() and local_path.stat().st_size == item.get("size"):
                self.output.info(f"Already exists: {relative_path}")
                stats.skipped += 1
                continue

            try:
                self.output.info(f"Downloading: {relative_path}")
                self.client.download_file(item["url"], local_path)
                stats.downloaded += 1
                stats.bytes_downloaded += int(item.get("size") or 0)
            except (TncAPIError, OSError) as e:
                logger.warning("Failed to download %s: %s", relative_path, e)
                self.output.error(f"Failed to download {relative_path}: {e}")
                stats.errors += 1

    def _display_summary(self, stats: PullStats) -> None:
        if self.output.quiet:
            return
        self.output.print("")
        self.output.print_summary(
            "Download Summary",
            [
                (
                    "Downloaded",
                    f"{stats.downloaded} file(s), "
                    f"{format_size(stats.bytes_downloaded)}",
                ),
                ("Skipped", f"{stats.skipped} file(s)"),
                ("Errors", f"{stats.errors} file(s)"),
                ("Tracked", f"{stats.tracked} file(s)"),
            ],
        )
        if stats.errors:
            self.output.warning("Some files failed to download. Check above logs.")


def _is_state_path(relative_path: str) -> bool:
    return relative_path.split("/")[0].startswith(".tnc")


def _is_inside_root(relative_path: str) -> bool:
    """Reject absolute remote paths and paths that climb out with ``..``."""
    path = PurePosixPath(relative_path)
    return not path.is_absolute() and ".." not in path.parts


def _root_content(folder: Any) -> list[dict[str, Any]]:
    if isinstance(folder, list):
        content = folder
    else:
        content = folder.get("rootContent")
        if content is None:
            content = folder.get("content")
    if not isinstance(content, list):
        raise TncInvalidResponseError("No valid content found in response")
    return content


def flatten_versions(items: list[dict[str, Any]]) -> VersionMap:
    """Build a version map from a remote tree in wire format."""
    versions: VersionMap = {}
    for item in items:
        path = item.get("path")
        if (
            item.get("type") == "file"
            and path
            and _is_inside_root(path)
            and not _is_state_path(path)
        ):
            versions[path] = VersionRecord(
                hash=item.get("contentHash") or item.get("hash") or "",
                url=item.get("url"),
                version=int(item.get("version") or 1),
            )
        if item.get("children"):
            versions.update(flatten_versions(item["children"]))
    return versions
