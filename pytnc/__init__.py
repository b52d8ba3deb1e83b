"""TNC sync client - push changed project files to a TNC room."""

from .api import TncClient
from .exceptions import (
    TncAPIError,
    TncAuthenticationError,
    TncCommitError,
    TncConfigError,
    TncDownloadError,
    TncError,
    TncFileNotFoundError,
    TncInvalidResponseError,
    TncNetworkError,
    TncNotFoundError,
    TncPermissionError,
    TncRateLimitError,
    TncStateError,
    TncUploadError,
)
from .project import Project, ProjectMeta

__version__ = "0.1.0"

__all__ = [
    "TncClient",
    "Project",
    "ProjectMeta",
    "TncError",
    "TncAPIError",
    "TncAuthenticationError",
    "TncCommitError",
    "TncConfigError",
    "TncDownloadError",
    "TncFileNotFoundError",
    "TncInvalidResponseError",
    "TncNetworkError",
    "TncNotFoundError",
    "TncPermissionError",
    "TncRateLimitError",
    "TncStateError",
    "TncUploadError",
]
