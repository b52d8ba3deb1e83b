"""Collaborators used by the sync engine.

The engine only depends on the two small protocols below. ``TncUploader``
and ``TncMetadataCommitter`` implement them on top of ``TncClient``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

from ..api import TncClient
from ..exceptions import TncInvalidResponseError
from ..utils import UPLOAD_ROOT_FOLDER


@dataclass
class CommitReceipt:
    """Remote revision created by a metadata commit."""

    folder_id: Optional[str]
    branch: Optional[str] = None
    branch_id: Optional[str] = None


class Uploader(Protocol):
    """Uploads one local file and returns its remote URL."""

    def upload(self, local_path: Path, namespace: str) -> str: ...


class MetadataCommitter(Protocol):
    """Stores the uploaded tree as a new remote revision."""

    def commit(
        self,
        previous_revision: Optional[str],
        tree: list[dict[str, Any]],
        actor: str,
        namespace: str,
    ) -> CommitReceipt: ...


class TncUploader:
    """Uploads files of a push into ``tnc_uploads/<namespace>``."""

    def __init__(self, client: TncClient, room_id: str):
        """Initialize uploader.

        Args:
            client: TNC API client
            room_id: Room the push belongs to
        """
        self.client = client
        self.room_id = room_id

    def upload(self, local_path: Path, namespace: str) -> str:
        return self.client.upload_file(
            file_path=local_path,
            folder=f"{UPLOAD_ROOT_FOLDER}/{namespace}",
            room_id=self.room_id,
        )


class TncMetadataCommitter:
    """Commits the uploaded tree to the room's upload endpoint."""

    def __init__(
        self,
        client: TncClient,
        room_id: str,
        project_id: Optional[str],
        branch: Optional[str] = None,
        branch_id: Optional[str] = None,
    ):
        self.client = client
        self.room_id = room_id
        self.project_id = project_id
        self.branch = branch
        self.branch_id = branch_id

    def commit(
        self,
        previous_revision: Optional[str],
        tree: list[dict[str, Any]],
        actor: str,
        namespace: str,
    ) -> CommitReceipt:
        """Send the tree and return the new remote revision.

        Args:
            previous_revision: Folder id of the previous push, if any
            tree: Uploaded tree in wire format
            actor: Email of the pushing user
            namespace: Folder id under which the files were uploaded

        Returns:
            CommitReceipt with the new folder id

        Raises:
            TncAPIError: If the server rejects the commit
        """
        response = self.client.commit_push(
            self.room_id,
            {
                "folderId": namespace,
                "content": tree,
                "uploadedBy": actor,
                "projectId": self.project_id,
                "latestFolderId": previous_revision,
                "branch": self.branch,
                "branchId": self.branch_id,
            },
        )
        if not isinstance(response, dict):
            raise TncInvalidResponseError(f"Unexpected commit response: {response!r}")
        return CommitReceipt(
            folder_id=response.get("folderId"),
            branch=response.get("branch"),
            branch_id=response.get("branchId"),
        )
