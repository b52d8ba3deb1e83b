"""Tests for project layout and metadata."""

import json

import pytest

from pytnc.exceptions import TncConfigError, TncStateError
from pytnc.project import Project, ProjectMeta


class TestProjectMeta:
    """Tests for ProjectMeta."""

    def test_round_trip_keys(self):
        meta = ProjectMeta(project_id="p1", project_name="demo", room_id="r1")
        data = meta.to_dict()
        assert data == {
            "projectId": "p1",
            "projectName": "demo",
            "currentBranch": "main",
            "roomId": "r1",
            "lastCommit": None,
            "files": {},
        }
        assert ProjectMeta.from_dict(data) == meta

    def test_active_branch_prefers_branch(self):
        meta = ProjectMeta.from_dict(
            {"projectId": "p1", "currentBranch": "main", "branch": "feature"}
        )
        assert meta.active_branch == "feature"
        assert ProjectMeta(project_id="p1").active_branch == "main"


class TestProject:
    """Tests for Project."""

    def test_paths(self, tmp_path):
        project = Project(tmp_path)
        assert project.meta_path == tmp_path.resolve() / ".tnc" / ".tncmeta.json"
        assert project.push_record_path.name == ".tncpush.json"
        assert project.versions_path == tmp_path.resolve() / ".tncversions"
        assert project.ignore_path.name == ".ignoretnc"

    def test_initialize(self, tmp_path):
        project = Project(tmp_path)
        assert not project.is_initialized()

        project.initialize(ProjectMeta(project_id="p1", room_id="r1"))

        assert project.is_initialized()
        assert project.load_meta().project_id == "p1"
        assert json.loads(project.push_record_path.read_text()) == {}

    def test_load_meta_not_initialized(self, tmp_path):
        with pytest.raises(TncConfigError, match="not initialized"):
            Project(tmp_path).load_meta()

    def test_load_meta_malformed(self, tmp_path):
        project = Project(tmp_path)
        project.tnc_dir.mkdir()
        project.meta_path.write_text('{"projectName": "no id"}')
        with pytest.raises(TncStateError):
            project.load_meta()

    def test_ignore_matcher_includes_state_files(self, tmp_path):
        project = Project(tmp_path)
        project.ignore_path.write_text("*.log\n")

        matcher = project.load_ignore_matcher()

        assert matcher.is_ignored(".tnc")
        assert matcher.is_ignored(".tnc/.tncmeta.json")
        assert matcher.is_ignored(".tncversions")
        assert matcher.is_ignored(".tncversions.backup")
        assert matcher.is_ignored("run.log")
        assert not matcher.is_ignored(".ignoretnc")

    def test_relative_path(self, tmp_path):
        project = Project(tmp_path)
        (tmp_path / "d").mkdir()
        assert project.relative_path(tmp_path / "d") == "d"
        with pytest.raises(ValueError):
            project.relative_path(tmp_path.parent)
