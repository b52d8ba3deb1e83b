"""Change detection and versioned push/pull for TNC projects."""

from .conflict import ConflictDetector, ConflictPolicy, MergeConflict, resolve_conflicts
from .diff import ChangeSummary, DiffEngine, DiffResult, summarize
from .engine import SyncEngine, SyncResult, SyncStatus, UploadOutcome
from .hasher import ContentHasher, HashResult, SkippedEntry, folder_fingerprint
from .ignore import IGNORE_FILE_NAME, IgnoreMatcher, IgnoreRule, load_ignore_file
from .operations import (
    CommitReceipt,
    MetadataCommitter,
    TncMetadataCommitter,
    TncUploader,
    Uploader,
)
from .pull import PullEngine, PullStats
from .scanner import DirectoryScanner, NodeKind, TreeNode, iter_files, iter_nodes
from .state import (
    PushRecord,
    PushRecordStore,
    VersionMap,
    VersionRecord,
    VersionStore,
)

__all__ = [
    "SyncEngine",
    "SyncResult",
    "SyncStatus",
    "UploadOutcome",
    "DirectoryScanner",
    "NodeKind",
    "TreeNode",
    "iter_files",
    "iter_nodes",
    "ContentHasher",
    "HashResult",
    "SkippedEntry",
    "folder_fingerprint",
    "DiffEngine",
    "DiffResult",
    "ChangeSummary",
    "summarize",
    "IgnoreMatcher",
    "IgnoreRule",
    "IGNORE_FILE_NAME",
    "load_ignore_file",
    "VersionRecord",
    "VersionMap",
    "VersionStore",
    "PushRecord",
    "PushRecordStore",
    "Uploader",
    "MetadataCommitter",
    "CommitReceipt",
    "TncUploader",
    "TncMetadataCommitter",
    "ConflictDetector",
    "ConflictPolicy",
    "MergeConflict",
    "resolve_conflicts",
    "PullEngine",
    "PullStats",
]
