"""Content fingerprints for change detection.

A file fingerprint is SHA-256 over the file bytes followed by the tag
``size:<bytes>|mtime:<milliseconds>``. It is deliberately not a pure content
hash: touching a file without changing its bytes gives a new fingerprint and
the file is reported as changed.

A folder fingerprint is SHA-256 over ``folder:<relative path>|`` followed by
``name:fingerprint`` for every child in sorted name order, joined with ``|``.
Children that cannot be hashed are left out and reported in
``HashResult.skipped``.
"""

import hashlib
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..utils import HASH_CHUNK_SIZE, format_millis
from .ignore import IgnoreMatcher

logger = logging.getLogger(__name__)


@dataclass
class SkippedEntry:
    """A path that could not be fingerprinted."""

    relative_path: str
    reason: str


@dataclass
class HashResult:
    """Best-effort fingerprint plus the entries that were skipped."""

    fingerprint: Optional[str]
    skipped: list[SkippedEntry] = field(default_factory=list)
    error: Optional[str] = None


class ContentHasher:
    """Computes file and folder fingerprints below a sync root."""

    def __init__(self, root: Path, ignore: Optional[IgnoreMatcher] = None):
        """Initialize content hasher.

        Args:
            root: Sync root; folder identity tags are relative to it
            ignore: Ignore rules, so folder fingerprints only cover the
                entries the scanner would report
        """
        self.root = root.resolve()
        self.ignore = ignore or IgnoreMatcher()

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()

    def fingerprint(self, path: Path) -> Optional[str]:
        """Return the fingerprint of ``path`` or None if it cannot be computed."""
        return self.hash_path(path).fingerprint

    def hash_path(self, path: Path) -> HashResult:
        """Fingerprint a file or folder.

        Never raises: a missing path gives ``HashResult(None)``, any other
        I/O failure is logged and gives ``HashResult(None, error=...)``.

        Args:
            path: Absolute path to a file or folder

        Returns:
            HashResult for the path
        """
        if not path.exists():
            return HashResult(None, error="does not exist")

        try:
            if path.is_dir() and not path.is_symlink():
                return self._hash_folder(path)
            return HashResult(self._hash_file(path))
        except OSError as e:
            logger.error("Error computing hash for %s: %s", path, e)
            return HashResult(None, error=str(e) or type(e).__name__)

    def _hash_file(self, path: Path) -> str:
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
        stat = path.stat()
        tag = f"size:{stat.st_size}|mtime:{format_millis(stat.st_mtime_ns)}"
        digest.update(tag.encode())
        return digest.hexdigest()

    def _hash_folder(self, path: Path) -> HashResult:
        relative_path = self._relative(path)
        skipped: list[SkippedEntry] = []
        children: list[tuple[str, str]] = []

        for name in sorted(os.listdir(path)):
            child = path / name
            child_relative = f"{relative_path}/{name}" if relative_path != "." else name
            if self.ignore.is_ignored(child_relative):
                continue
            if child.is_symlink() and child.is_dir():
                continue

            result = self.hash_path(child)
            skipped.extend(result.skipped)
            if result.fingerprint is None:
                skipped.append(
                    SkippedEntry(child_relative, result.error or "unreadable")
                )
                continue
            children.append((name, result.fingerprint))

        return HashResult(folder_fingerprint(relative_path, children), skipped=skipped)


def folder_fingerprint(relative_path: str, children: list[tuple[str, str]]) -> str:
    """Combine child fingerprints into a folder fingerprint.

    Args:
        relative_path: Folder path relative to the sync root
        children: (name, fingerprint) pairs; order does not matter

    Returns:
        Hex SHA-256 digest
    """
    parts = [f"{name}:{fingerprint}" for name, fingerprint in sorted(children)]
    digest = hashlib.sha256()
    digest.update(f"folder:{relative_path}|".encode())
    digest.update("|".join(parts).encode())
    return digest.hexdigest()
