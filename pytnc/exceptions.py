"""Exceptions raised by the TNC sync client."""

from typing import Any, Optional


class TncError(Exception):
    """Base class for all pytnc errors."""


class TncConfigError(TncError):
    """Raised when the client is not logged in or the project is not set up."""


class TncStateError(TncConfigError):
    """Raised when a local state file (versions, push record, meta) is malformed."""


class TncAPIError(TncError):
    """Base class for errors returned by the TNC server."""


class TncAuthenticationError(TncAPIError):
    """Invalid or missing token."""


class TncPermissionError(TncAPIError):
    """The token is valid but lacks access to the resource."""


class TncNotFoundError(TncAPIError):
    """The requested room, project or folder does not exist."""


class TncRateLimitError(TncAPIError):
    """The server asked us to slow down."""


class TncNetworkError(TncAPIError):
    """Connection-level failure (DNS, refused, timeout)."""


class TncInvalidResponseError(TncAPIError):
    """The server answered with something that is not the expected JSON."""


class TncUploadError(TncAPIError):
    """A single file could not be uploaded to object storage."""


class TncDownloadError(TncAPIError):
    """A single file could not be downloaded."""


class TncCommitError(TncAPIError):
    """The metadata commit for a push failed.

    Files may already be uploaded to storage; the local version store has
    not been touched.
    """

    def __init__(self, message: str, uploaded_tree: Optional[list[Any]] = None):
        super().__init__(message)
        self.uploaded_tree = uploaded_tree or []


class TncFileNotFoundError(TncError):
    """A local file passed to the client does not exist."""

    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path
