"""API client for the TNC collaboration server."""

from __future__ import annotations

import random
import time
from pathlib import Path
from typing import Any

import httpx

from .exceptions import (
    TncAPIError,
    TncAuthenticationError,
    TncConfigError,
    TncDownloadError,
    TncFileNotFoundError,
    TncInvalidResponseError,
    TncNetworkError,
    TncNotFoundError,
    TncPermissionError,
    TncRateLimitError,
    TncUploadError,
)
from .utils import (
    CLOUDINARY_UPLOAD_URL,
    DEFAULT_API_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
)


class TncClient:
    """Client for the rooms, folders and project endpoints of the TNC server."""

    def __init__(
        self,
        token: str | None,
        email: str | None,
        api_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize TNC API client.

        Args:
            token: Session token from ~/.tncrc
            email: Account email from ~/.tncrc
            api_url: Server base URL (default: http://localhost:3001)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        if not token or not email:
            raise TncConfigError(
                "Not logged in. Add token and email to ~/.tncrc "
                "or set TNC_TOKEN and TNC_EMAIL."
            )

        self.token = token
        self.email = email
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={
                    "authorization": f"Bearer {self.token}",
                    "email": self.email,
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> TncClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Transient failures
        if isinstance(exception, (TncNetworkError, TncRateLimitError)):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Map an HTTP error to a pytnc exception.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise TncAuthenticationError(
                "Invalid token or unauthorized access - log in again"
            ) from e
        elif status_code == 403:
            raise TncPermissionError("Access forbidden - check your room access") from e
        elif status_code == 404:
            raise TncNotFoundError("Resource not found") from e
        elif status_code == 429:
            error = TncRateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = (
                        error_data.get("message")
                        or error_data.get("error")
                        or error_data.get("detail")
                    )
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, keep the status-based message
            pass

        error = TncAPIError(error_msg)
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (error, should_retry)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            TncAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    raise TncInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise TncInvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    if isinstance(error, TncRateLimitError):
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = float(retry_after)
                        else:
                            delay = self._calculate_retry_delay(attempt)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    time.sleep(delay)
                    continue
                raise error from e
            except TncAPIError:
                raise
            except httpx.RequestError as e:
                error = TncNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise TncAPIError("Request failed after all retry attempts")

    # =========================
    # Upload Operations
    # =========================

    def get_upload_signature(self, room_id: str, filename: str, folder: str) -> Any:
        """Request a signed upload for one file.

        Returns:
            Dict with 'signature', 'timestamp', 'api_key' and 'cloud_name'
        """
        return self._request(
            "POST",
            f"/rooms/{room_id}/get-upload-signature",
            json={"filename": filename, "folder": folder, "roomId": room_id},
        )

    def upload_file(self, file_path: Path, folder: str, room_id: str) -> str:
        """Upload a file to object storage using a server-signed request.

        This is a 2-step process:
        1. Get an upload signature for the file from the TNC server
        2. Post the file to Cloudinary together with the signature

        Args:
            file_path: Local path to the file
            folder: Storage folder (namespace) for this push
            room_id: Room the push belongs to

        Returns:
            Secure URL of the uploaded file

        Raises:
            TncFileNotFoundError: If the file doesn't exist
            TncUploadError: If the storage upload fails
        """
        if not file_path.exists():
            raise TncFileNotFoundError(str(file_path))

        signature = self.get_upload_signature(room_id, file_path.name, folder)
        cloud_name = signature.get("cloud_name")
        if not cloud_name or not signature.get("signature"):
            raise TncUploadError(f"Invalid upload signature response: {signature}")

        form = {
            "folder": folder,
            "public_id": file_path.name,
            "timestamp": str(signature.get("timestamp", "")),
            "signature": signature["signature"],
            "api_key": str(signature.get("api_key", "")),
        }

        try:
            with open(file_path, "rb") as f:
                response = httpx.post(
                    CLOUDINARY_UPLOAD_URL.format(cloud_name=cloud_name),
                    data=form,
                    files={"file": (file_path.name, f)},
                    timeout=max(self.timeout, 60.0),
                )
            response.raise_for_status()
            secure_url = response.json().get("secure_url")
        except httpx.HTTPStatusError as e:
            raise TncUploadError(f"Storage upload failed: {e}") from e
        except httpx.RequestError as e:
            raise TncUploadError(f"Network error during storage upload: {e}") from e
        except ValueError as e:
            raise TncUploadError("Invalid JSON response from storage") from e

        if not secure_url:
            raise TncUploadError("Storage response missing secure_url")
        return secure_url

    # =========================
    # Room Operations
    # =========================

    def commit_push(self, room_id: str, payload: dict[str, Any]) -> Any:
        """Store the metadata of a push (the uploaded tree).

        Args:
            room_id: Room ID
            payload: Dict with 'folderId', 'content', 'uploadedBy',
                'projectId', 'latestFolderId', 'branch' and 'branchId'

        Returns:
            Dict with the new 'folderId', 'branch' and 'branchId'
        """
        return self._request("POST", f"/rooms/{room_id}/upload", json=payload)

    def get_cloud_files(self, room_id: str, branch: str | None = None) -> list[Any]:
        """List the files of the latest push of a room branch."""
        params = {"branch": branch} if branch else None
        result = self._request("GET", f"/rooms/{room_id}/files", params=params)
        if isinstance(result, dict):
            return result.get("files") or []
        return []

    # =========================
    # Project Operations
    # =========================

    def init_project(self, project_name: str, room_id: str, machine_id: str) -> Any:
        """Register a new project for a room.

        Returns:
            Dict with a 'project' object holding the new '_id'
        """
        return self._request(
            "POST",
            "/cli/init",
            json={
                "projectName": project_name,
                "owner": self.email,
                "token": self.token,
                "machineId": machine_id,
                "roomId": room_id,
            },
        )

    # =========================
    # Download Operations
    # =========================

    def get_folder(
        self, room_id: str, project_id: str, version: int | None = None
    ) -> Any:
        """Fetch the description of a pushed folder (latest or a given version)."""
        params: dict[str, Any] = {"projectId": project_id}
        if version is not None:
            params["version"] = version
        return self._request("GET", f"/folders/{room_id}/download", params=params)

    def download_file(self, url: str, output_path: Path) -> Path:
        """Download a stored file.

        Args:
            url: Storage URL of the file
            output_path: Where to write the file

        Returns:
            Path where the file was saved

        Raises:
            TncDownloadError: If the download fails
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with httpx.stream(
                "GET", url, timeout=max(self.timeout, 60.0), follow_redirects=True
            ) as response:
                if response.status_code != 200:
                    raise TncDownloadError(
                        f"Failed to download: {response.status_code}"
                    )
                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except httpx.RequestError as e:
            output_path.unlink(missing_ok=True)
            raise TncDownloadError(f"Network error during download: {e}") from e
        return output_path
