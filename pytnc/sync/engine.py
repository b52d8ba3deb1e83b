"""Core sync engine: upload changed files and commit the resulting tree."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from ..exceptions import TncCommitError
from ..output import OutputFormatter
from ..utils import make_upload_namespace
from .conflict import ConflictDetector, ConflictPolicy, resolve_conflicts
from .diff import ChangeSummary, DiffEngine, DiffResult, summarize
from .hasher import ContentHasher
from .operations import CommitReceipt, MetadataCommitter, Uploader
from .scanner import DirectoryScanner, TreeNode, iter_files
from .state import PushRecord, PushRecordStore, VersionMap, VersionRecord, VersionStore

if TYPE_CHECKING:
    from ..project import Project

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """Outcome of a sync call."""

    NO_CHANGES = "no_changes"
    """Nothing changed since the last push, no network calls were made"""

    NOTHING_TO_UPLOAD = "nothing_to_upload"
    """The target is empty or entirely ignored"""

    COMMITTED = "committed"
    """Uploads finished and the metadata commit succeeded"""


@dataclass
class UploadOutcome:
    """Result of uploading one changed file."""

    relative_path: str
    url: Optional[str] = None
    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncResult:
    """What a sync call did."""

    status: SyncStatus
    tree: list[TreeNode] = field(default_factory=list)
    uploaded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    versions: VersionMap = field(default_factory=dict)
    push_record: Optional[PushRecord] = None

    def to_dict(self) -> dict:
        """Statistics in the shape used for --json output."""
        return {
            "status": self.status.value,
            "uploads": len(self.uploaded),
            "skips": len(self.skipped),
            "errors": len(self.failed),
            "uploaded": self.uploaded,
            "failed": self.failed,
            "folder_id": self.push_record.folder_id if self.push_record else None,
        }


class SyncEngine:
    """Uploads the changed files of a diffed tree and commits the result.

    One sync runs at a time per project. Uploads may run in parallel, but the
    committed tree always keeps the scan order.
    """

    def __init__(
        self,
        version_store: VersionStore,
        push_store: PushRecordStore,
        output: Optional[OutputFormatter] = None,
        max_workers: int = 1,
    ):
        """Initialize sync engine.

        Args:
            version_store: Where the version map is persisted
            push_store: Where the push record is persisted
            output: Output formatter for displaying progress/status
            max_workers: Number of parallel uploads (default: 1)
        """
        self.version_store = version_store
        self.push_store = push_store
        self.output = output or OutputFormatter()
        self.max_workers = max(1, max_workers)

    @classmethod
    def for_project(
        cls,
        project: Project,
        output: Optional[OutputFormatter] = None,
        max_workers: int = 1,
    ) -> SyncEngine:
        """Create an engine persisting to a project's state files."""
        return cls(
            VersionStore(project.versions_path),
            PushRecordStore(project.push_record_path),
            output=output,
            max_workers=max_workers,
        )

    # =========================
    # Orchestration
    # =========================

    def scan_and_diff(
        self, project: Project, target: Optional[Path] = None
    ) -> tuple[DiffResult, VersionMap]:
        """Scan a target inside the project and diff it against the store.

        Args:
            project: Project the target belongs to
            target: File or folder to scan (default: the project root)

        Returns:
            Tuple of (DiffResult, versions loaded from the store)
        """
        ignore = project.load_ignore_matcher()
        scanner = DirectoryScanner(ignore)
        hasher = ContentHasher(project.root, ignore)
        target = target or project.root

        with self._spinner() as progress:
            task = (
                progress.add_task("Scanning...", total=None)
                if progress is not None
                else None
            )
            tree = scanner.scan_path(target, project.root)
            if progress is not None and task is not None:
                progress.update(task, description="Computing fingerprints...")
            versions = self.version_store.load()
            result = DiffEngine(hasher).diff(tree, versions)

        if scanner.ignored and not self.output.quiet:
            for path in scanner.ignored:
                self.output.info(f"Ignored: {path}")
        for entry in result.skipped:
            self.output.warning(f"Could not hash {entry.relative_path}: {entry.reason}")
        return result, versions

    def status(self, project: Project) -> ChangeSummary:
        """Scan and diff the whole project without uploading anything."""
        result, versions = self.scan_and_diff(project)
        return summarize(result, versions)

    def push(
        self,
        project: Project,
        target: Path,
        room_id: str,
        actor: str,
        uploader: Uploader,
        committer: MetadataCommitter,
        conflict_detector: Optional[ConflictDetector] = None,
        conflict_policy: ConflictPolicy = ConflictPolicy.LOCAL_ALWAYS_WINS,
    ) -> SyncResult:
        """Push a file or folder of the project.

        Scans and diffs the target, checks for conflicts, then runs
        :meth:`sync`.

        Args:
            project: Initialized project
            target: File or folder inside the project
            room_id: Room to push to
            actor: Email of the pushing user
            uploader: Storage uploader
            committer: Metadata committer
            conflict_detector: Optional detector comparing with the cloud
            conflict_policy: How detected conflicts are resolved

        Returns:
            SyncResult

        Raises:
            TncConfigError: If the project is not initialized
            TncCommitError: If the metadata commit fails
        """
        meta = project.load_meta()
        previous = self.push_store.load()

        result, versions = self.scan_and_diff(project, target)
        if not result.tree:
            self.output.info("Nothing to upload (all ignored).")
            return SyncResult(status=SyncStatus.NOTHING_TO_UPLOAD)

        self.output.info(f"Previous versions: {len(versions)}")

        if result.has_changes and conflict_detector is not None:
            self.output.info("Checking for merge conflicts...")
            conflicts = conflict_detector.detect(result.tree)
            resolve_conflicts(conflicts, conflict_policy, self.output)

        return self.sync(
            result.tree,
            versions,
            uploader,
            committer,
            actor=actor,
            room_id=room_id,
            project_id=meta.project_id,
            previous_revision=previous.folder_id if previous else None,
            namespace=make_upload_namespace(target.resolve().name),
        )

    # =========================
    # Sync
    # =========================

    def sync(
        self,
        tree: list[TreeNode],
        prior_versions: VersionMap,
        uploader: Uploader,
        committer: MetadataCommitter,
        actor: str,
        room_id: str,
        project_id: Optional[str] = None,
        previous_revision: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> SyncResult:
        """Upload the changed files of a diffed tree and commit the result.

        Changed files are uploaded and get ``version = prior + 1`` (or 1).
        A failed upload is logged, the file keeps its prior URL and version
        in the committed tree, and its version store entry is left as it was
        so the next push retries it. Unchanged files carry their prior URL
        and version without any upload.

        The committer is called exactly once. If it fails nothing is
        persisted and TncCommitError is raised; already uploaded files stay
        orphaned in storage and are uploaded again by the next push.

        Args:
            tree: Diffed tree
            prior_versions: Version map the tree was diffed against
            uploader: Storage uploader
            committer: Metadata committer
            actor: Email of the pushing user
            room_id: Room the push belongs to
            project_id: Project id recorded in the push record
            previous_revision: Folder id of the previous push
            namespace: Storage folder id for this push

        Returns:
            SyncResult

        Raises:
            TncCommitError: If the metadata commit fails
        """
        if not any(node.changed for node in tree):
            self.output.info("No changes detected since last push.")
            return SyncResult(status=SyncStatus.NO_CHANGES, tree=tree)

        namespace = namespace or make_upload_namespace(room_id)
        changed = [node for node in iter_files(tree) if node.changed]
        self.output.info(f"Changed files: {len(changed)}")

        self.output.info("Uploading...")
        outcomes = self._upload_all(changed, uploader, namespace)

        uploaded_tree = [self._assemble(node, prior_versions, outcomes) for node in tree]
        failed = {path for path, outcome in outcomes.items() if not outcome.ok}
        result = SyncResult(
            status=SyncStatus.COMMITTED,
            tree=uploaded_tree,
            uploaded=[n.relative_path for n in changed if outcomes[n.relative_path].ok],
            skipped=[n.relative_path for n in iter_files(tree) if not n.changed],
            failed=[n.relative_path for n in changed if n.relative_path in failed],
        )

        self.output.info("Sending metadata...")
        payload = [node.to_dict() for node in uploaded_tree]
        try:
            receipt = committer.commit(previous_revision, payload, actor, namespace)
        except Exception as e:
            logger.error("Metadata commit failed: %s", e)
            self.output.error(f"Upload failed: {e}")
            self.output.warning("Local version state was not updated.")
            raise TncCommitError(f"Metadata commit failed: {e}", payload) from e

        self.output.success("Upload complete! Metadata stored successfully.")

        result.versions = self._merge_versions(prior_versions, uploaded_tree, failed)
        self.version_store.save(result.versions)
        result.push_record = self._build_push_record(
            result.versions, receipt, room_id, actor, project_id
        )
        self.push_store.save(result.push_record)

        self.output.info(
            f"Saved {len(result.versions)} file(s) to {self.version_store.path.name}"
        )
        self._display_summary(result)
        return result

    def _upload_all(
        self, nodes: list[TreeNode], uploader: Uploader, namespace: str
    ) -> dict[str, UploadOutcome]:
        """Upload every node, sequentially or with bounded parallelism.

        Returns:
            Outcome per relative path (completion order is irrelevant)
        """
        outcomes: dict[str, UploadOutcome] = {}

        with self._bar(len(nodes)) as progress:
            task = (
                progress.add_task("Uploading files...", total=len(nodes))
                if progress is not None
                else None
            )

            def record(outcome: UploadOutcome) -> None:
                outcomes[outcome.relative_path] = outcome
                if progress is not None and task is not None:
                    progress.update(task, advance=1)

            if self.max_workers > 1 and len(nodes) > 1:
                logger.debug(
                    "Uploading %d file(s) with %d workers", len(nodes), self.max_workers
                )
                with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                    futures = [
                        executor.submit(self._upload_one, node, uploader, namespace)
                        for node in nodes
                    ]
                    for future in as_completed(futures):
                        record(future.result())
            else:
                for node in nodes:
                    record(self._upload_one(node, uploader, namespace))

        return outcomes

    def _upload_one(
        self, node: TreeNode, uploader: Uploader, namespace: str
    ) -> UploadOutcome:
        """Upload a single file; failures are returned, never raised."""
        start = time.time()
        self.output.info(f"Uploading changed file: {node.relative_path}")
        try:
            url = uploader.upload(node.path, namespace)
        except Exception as e:
            logger.warning("Failed to upload %s: %s", node.relative_path, e)
            self.output.error(f"Failed to upload {node.relative_path}: {e}")
            return UploadOutcome(
                node.relative_path,
                error=str(e) or type(e).__name__,
                elapsed=time.time() - start,
            )

        elapsed = time.time() - start
        logger.debug("Upload of %s took %.2fs", node.relative_path, elapsed)
        self.output.info(f"Uploaded: {node.relative_path}")
        return UploadOutcome(node.relative_path, url=url, elapsed=elapsed)

    def _assemble(
        self,
        node: TreeNode,
        prior_versions: VersionMap,
        outcomes: dict[str, UploadOutcome],
    ) -> TreeNode:
        """Rebuild a node of the committed tree, keeping scan order."""
        if node.is_folder:
            return replace(
                node,
                children=[
                    self._assemble(child, prior_versions, outcomes)
                    for child in node.children
                ],
            )

        prior = prior_versions.get(node.relative_path)
        outcome = outcomes.get(node.relative_path)

        if outcome is not None and outcome.ok:
            version = prior.version + 1 if prior else 1
            return replace(node, remote_url=outcome.url, version=version)

        if outcome is None:
            logger.debug("Using previous version for: %s", node.relative_path)

        # Unchanged, or changed but the upload failed: fall back to prior
        return replace(
            node,
            remote_url=prior.url if prior else None,
            version=prior.version if prior else 1,
        )

    def _merge_versions(
        self,
        prior_versions: VersionMap,
        uploaded_tree: list[TreeNode],
        failed: set[str],
    ) -> VersionMap:
        """Fold the committed tree into the prior version map.

        Entries of paths that are not part of the tree are kept. Paths whose
        upload failed keep their prior entry (or stay absent).
        """
        versions = dict(prior_versions)
        for node in iter_files(uploaded_tree):
            if node.relative_path in failed:
                continue
            versions[node.relative_path] = VersionRecord(
                hash=node.fingerprint,
                url=node.remote_url,
                version=node.version or 1,
            )
        return versions

    def _build_push_record(
        self,
        versions: VersionMap,
        receipt: CommitReceipt,
        room_id: str,
        actor: str,
        project_id: Optional[str],
    ) -> PushRecord:
        latest_version = max((r.version for r in versions.values()), default=1)
        return PushRecord(
            version=latest_version,
            pushed_at=PushRecord.now(),
            room_id=room_id,
            pushed_by=actor,
            project_id=project_id,
            folder_id=receipt.folder_id,
            branch=receipt.branch,
            branch_id=receipt.branch_id,
        )

    # =========================
    # Display
    # =========================

    def _spinner(self) -> AbstractContextManager[Optional[Progress]]:
        if self.output.quiet or self.output.json_output:
            return nullcontext()
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        )

    def _bar(self, total: int) -> AbstractContextManager[Optional[Progress]]:
        if self.output.quiet or self.output.json_output or total < 2:
            return nullcontext()
        return Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            transient=True,
        )

    def _display_summary(self, result: SyncResult) -> None:
        """Display sync summary.

        Args:
            result: Result of the sync
        """
        if self.output.quiet:
            return
        self.output.print("")
        self.output.success("Push complete!")
        self.output.info(f"  Uploaded: {len(result.uploaded)}")
        self.output.info(f"  Skipped (unchanged): {len(result.skipped)}")
        if result.failed:
            self.output.warning(f"  Failed: {len(result.failed)}")
            for path in result.failed:
                self.output.warning(f"    {path} (kept previous version)")
