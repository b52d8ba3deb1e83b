"""Tests for the upload and commit adapters."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from pytnc.api import TncClient
from pytnc.exceptions import TncInvalidResponseError
from pytnc.sync.operations import CommitReceipt, TncMetadataCommitter, TncUploader


@pytest.fixture
def mock_client():
    return Mock(spec=TncClient)


class TestTncUploader:
    """Tests for TncUploader."""

    def test_upload_into_namespace(self, mock_client):
        mock_client.upload_file.return_value = "https://cdn/a.txt"
        uploader = TncUploader(mock_client, "room1")

        url = uploader.upload(Path("/project/a.txt"), "abc123")

        assert url == "https://cdn/a.txt"
        mock_client.upload_file.assert_called_once_with(
            file_path=Path("/project/a.txt"),
            folder="tnc_uploads/abc123",
            room_id="room1",
        )


class TestTncMetadataCommitter:
    """Tests for TncMetadataCommitter."""

    def test_commit_payload(self, mock_client):
        mock_client.commit_push.return_value = {
            "folderId": "f2",
            "branch": "main",
            "branchId": "b1",
        }
        committer = TncMetadataCommitter(mock_client, "room1", "proj1", "main", "b1")
        tree = [{"name": "a.txt", "type": "file"}]

        receipt = committer.commit("f1", tree, "me@example.com", "ns")

        assert receipt == CommitReceipt("f2", "main", "b1")
        mock_client.commit_push.assert_called_once_with(
            "room1",
            {
                "folderId": "ns",
                "content": tree,
                "uploadedBy": "me@example.com",
                "projectId": "proj1",
                "latestFolderId": "f1",
                "branch": "main",
                "branchId": "b1",
            },
        )

    def test_unexpected_response(self, mock_client):
        mock_client.commit_push.return_value = ["nope"]
        committer = TncMetadataCommitter(mock_client, "room1", "proj1")

        with pytest.raises(TncInvalidResponseError):
            committer.commit(None, [], "me@example.com", "ns")
