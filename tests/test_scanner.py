"""Tests for directory scanning."""

from pathlib import Path

import pytest

from pytnc.sync.ignore import IgnoreMatcher
from pytnc.sync.scanner import (
    DirectoryScanner,
    NodeKind,
    TreeNode,
    iter_files,
    iter_nodes,
)


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """Create a small project tree."""
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.py").write_text("print('hi')")
    (tmp_path / "src" / "debug.log").write_text("log")
    (tmp_path / "build").mkdir()
    (tmp_path / "build" / "out.bin").write_bytes(b"\x00\x01")
    return tmp_path


class TestDirectoryScanner:
    """Tests for DirectoryScanner."""

    def test_scan_returns_children_of_root(self, sample_tree):
        tree = DirectoryScanner().scan(sample_tree)
        names = {node.name for node in tree}
        assert names == {"a.txt", "src", "build"}

    def test_scan_builds_nested_folders(self, sample_tree):
        tree = DirectoryScanner().scan(sample_tree)
        src = next(node for node in tree if node.name == "src")
        assert src.kind == NodeKind.FOLDER
        assert {c.relative_path for c in src.children} == {
            "src/main.py",
            "src/debug.log",
        }

    def test_file_node_carries_size_and_path(self, sample_tree):
        tree = DirectoryScanner().scan(sample_tree)
        node = next(node for node in tree if node.name == "a.txt")
        assert node.is_file
        assert node.size == 1
        assert node.path == sample_tree / "a.txt"
        assert node.relative_path == "a.txt"

    def test_ignored_folder_is_not_descended(self, sample_tree):
        scanner = DirectoryScanner(IgnoreMatcher(["build/**", "*.log"]))
        tree = scanner.scan(sample_tree)

        paths = {node.relative_path for node in iter_nodes(tree)}
        assert "build" not in paths
        assert "build/out.bin" not in paths
        assert "src/debug.log" not in paths
        assert set(scanner.ignored) == {"build", "src/debug.log"}

    def test_scan_empty_directory(self, tmp_path):
        assert DirectoryScanner().scan(tmp_path) == []

    def test_scan_missing_root_raises(self, tmp_path):
        with pytest.raises(OSError):
            DirectoryScanner().scan(tmp_path / "missing")

    def test_symlinked_directory_is_not_followed(self, sample_tree):
        (sample_tree / "loop").symlink_to(sample_tree, target_is_directory=True)
        scanner = DirectoryScanner()

        tree = scanner.scan(sample_tree)

        assert "loop" not in {node.name for node in tree}
        assert "loop" in scanner.ignored
        paths = [node.relative_path for node in iter_nodes(tree)]
        assert not any(path.startswith("loop/") for path in paths)

    def test_symlinked_file_is_scanned(self, sample_tree):
        (sample_tree / "link.txt").symlink_to(sample_tree / "a.txt")

        tree = DirectoryScanner().scan(sample_tree)

        link = next(node for node in tree if node.name == "link.txt")
        assert link.kind == NodeKind.FILE
        assert link.size == 1

    def test_scan_path_subfolder_keeps_root_relative_paths(self, sample_tree):
        tree = DirectoryScanner().scan_path(sample_tree / "src", sample_tree)
        assert {node.relative_path for node in tree} == {
            "src/main.py",
            "src/debug.log",
        }

    def test_scan_path_single_file(self, sample_tree):
        tree = DirectoryScanner().scan_path(sample_tree / "a.txt", sample_tree)
        assert len(tree) == 1
        assert tree[0].relative_path == "a.txt"

    def test_scan_path_ignored_target(self, sample_tree):
        scanner = DirectoryScanner(IgnoreMatcher(["build/**"]))
        assert scanner.scan_path(sample_tree / "build", sample_tree) == []


class TestTreeNode:
    """Tests for TreeNode helpers."""

    def test_file_to_dict(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("abc")
        node = TreeNode.from_path(path, tmp_path)
        node.fingerprint = "h"
        node.changed = True
        node.remote_url = "https://cdn/f.txt"
        node.version = 2

        assert node.to_dict() == {
            "name": "f.txt",
            "type": "file",
            "path": "f.txt",
            "hash": "h",
            "changed": True,
            "size": 3,
            "url": "https://cdn/f.txt",
            "version": 2,
        }

    def test_folder_to_dict_has_children(self, tmp_path):
        child = TreeNode("x.txt", NodeKind.FILE, tmp_path / "d/x.txt", "d/x.txt")
        folder = TreeNode(
            "d", NodeKind.FOLDER, tmp_path / "d", "d", children=[child]
        )
        data = folder.to_dict()
        assert data["type"] == "folder"
        assert "url" not in data
        assert data["children"][0]["path"] == "d/x.txt"

    def test_iter_files_is_depth_first(self, tmp_path):
        inner = TreeNode("b", NodeKind.FILE, tmp_path / "d/b", "d/b")
        folder = TreeNode("d", NodeKind.FOLDER, tmp_path / "d", "d", children=[inner])
        first = TreeNode("a", NodeKind.FILE, tmp_path / "a", "a")
        last = TreeNode("c", NodeKind.FILE, tmp_path / "c", "c")

        assert [n.relative_path for n in iter_files([first, folder, last])] == [
            "a",
            "d/b",
            "c",
        ]
        assert [n.relative_path for n in iter_nodes([folder])] == ["d", "d/b"]
