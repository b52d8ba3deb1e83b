"""Tests for change detection."""

import os
from pathlib import Path

import pytest

from pytnc.sync.diff import DiffEngine, summarize
from pytnc.sync.hasher import ContentHasher
from pytnc.sync.scanner import DirectoryScanner, iter_files, iter_nodes
from pytnc.sync.state import VersionRecord

MTIME_NS = 1_700_000_000_000_000_000


def write_file(path: Path, data: bytes, mtime_ns: int = MTIME_NS) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    os.utime(path, ns=(mtime_ns, mtime_ns))


def diff(root: Path, versions):
    tree = DirectoryScanner().scan(root)
    return DiffEngine(ContentHasher(root)).diff(tree, versions)


def recorded(root: Path, relative_paths):
    """Version map recording the current fingerprint of each path."""
    hasher = ContentHasher(root)
    return {
        rel: VersionRecord(hasher.fingerprint(root / rel), f"https://cdn/{rel}", 1)
        for rel in relative_paths
    }


def by_path(result):
    return {node.relative_path: node for node in iter_nodes(result.tree)}


class TestDiffEngine:
    """Tests for DiffEngine."""

    @pytest.fixture
    def root(self, tmp_path):
        write_file(tmp_path / "a.txt", b"a")
        write_file(tmp_path / "d" / "b.txt", b"b")
        return tmp_path

    def test_new_files_are_changed(self, root):
        result = diff(root, {})
        assert all(node.changed for node in iter_files(result.tree))
        assert result.has_changes

    def test_unchanged_files(self, root):
        result = diff(root, recorded(root, ["a.txt", "d/b.txt"]))
        assert not any(node.changed for node in iter_nodes(result.tree))
        assert not result.has_changes
        assert result.changed_files() == []

    def test_modified_bytes(self, root):
        versions = recorded(root, ["a.txt", "d/b.txt"])
        write_file(root / "a.txt", b"z")

        nodes = by_path(diff(root, versions))
        assert nodes["a.txt"].changed
        assert not nodes["d/b.txt"].changed

    def test_touched_file_is_changed(self, root):
        versions = recorded(root, ["a.txt", "d/b.txt"])
        os.utime(root / "a.txt", ns=(MTIME_NS + 5_000_000, MTIME_NS + 5_000_000))

        assert by_path(diff(root, versions))["a.txt"].changed

    def test_unchanged_after_recording_new_state(self, root):
        versions = recorded(root, ["a.txt", "d/b.txt"])
        write_file(root / "a.txt", b"zz")
        assert diff(root, versions).has_changes

        versions.update(recorded(root, ["a.txt"]))
        assert not diff(root, versions).has_changes

    def test_fingerprints_are_filled_in(self, root):
        nodes = by_path(diff(root, {}))
        hasher = ContentHasher(root)
        assert nodes["a.txt"].fingerprint == hasher.fingerprint(root / "a.txt")
        assert nodes["d"].fingerprint == hasher.fingerprint(root / "d")

    def test_input_tree_is_not_modified(self, root):
        tree = DirectoryScanner().scan(root)
        DiffEngine(ContentHasher(root)).diff(tree, {})
        assert not any(node.changed for node in iter_nodes(tree))
        assert all(node.fingerprint is None for node in iter_nodes(tree))

    def test_vanished_file_is_changed_and_reported(self, root):
        tree = DirectoryScanner().scan(root)
        versions = recorded(root, ["a.txt", "d/b.txt"])
        (root / "a.txt").unlink()

        result = DiffEngine(ContentHasher(root)).diff(tree, versions)
        node = by_path(result)["a.txt"]
        assert node.changed
        assert node.fingerprint is None
        assert [s.relative_path for s in result.skipped] == ["a.txt"]


class TestFolderPropagation:
    """A folder is changed exactly when one of its descendants is."""

    @pytest.fixture
    def root(self, tmp_path):
        write_file(tmp_path / "top" / "mid" / "deep" / "target.txt", b"1")
        write_file(tmp_path / "top" / "mid" / "other.txt", b"2")
        write_file(tmp_path / "top" / "sibling" / "s.txt", b"3")
        write_file(tmp_path / "quiet" / "q.txt", b"4")
        write_file(tmp_path / "empty_parent" / "empty" / ".keep", b"")
        return tmp_path

    def test_deep_change_marks_every_ancestor(self, root):
        all_files = [
            node.relative_path
            for node in iter_files(DirectoryScanner().scan(root))
        ]
        versions = recorded(root, all_files)
        write_file(root / "top" / "mid" / "deep" / "target.txt", b"changed")

        nodes = by_path(diff(root, versions))

        for ancestor in ["top", "top/mid", "top/mid/deep"]:
            assert nodes[ancestor].changed, ancestor
        for quiet in ["top/sibling", "quiet", "empty_parent", "empty_parent/empty"]:
            assert not nodes[quiet].changed, quiet
        assert not nodes["top/mid/other.txt"].changed

    def test_empty_folder_is_unchanged(self, tmp_path):
        (tmp_path / "empty").mkdir()
        nodes = by_path(diff(tmp_path, {}))
        assert not nodes["empty"].changed


class TestSummarize:
    """Tests for status counts."""

    def test_counts(self, tmp_path):
        write_file(tmp_path / "same.txt", b"s")
        write_file(tmp_path / "mod.txt", b"m")
        versions = recorded(tmp_path, ["same.txt", "mod.txt"])
        write_file(tmp_path / "mod.txt", b"mm")
        write_file(tmp_path / "new.txt", b"n")

        summary = summarize(diff(tmp_path, versions), versions)

        assert summary.new == ["new.txt"]
        assert summary.modified == ["mod.txt"]
        assert summary.unchanged == ["same.txt"]
        assert summary.has_changes
        assert summary.to_dict()["new"] == 1
