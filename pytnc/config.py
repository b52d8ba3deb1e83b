"""User-level configuration for the TNC client.

Credentials live in ``~/.tncrc`` as a small JSON document
(``{"token": ..., "email": ..., "apiUrl": ...}``). Environment variables
take precedence over the file so the client can run in CI without one.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import TncConfigError, TncStateError
from .utils import DEFAULT_API_URL

logger = logging.getLogger(__name__)

RC_FILE_NAME = ".tncrc"


class Config:
    """Lazily loaded view of the user's credentials file."""

    def __init__(self, rc_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            rc_path: Path to the credentials file. Defaults to $TNC_RC_FILE
                or ~/.tncrc
        """
        if rc_path is None:
            env_path = os.environ.get("TNC_RC_FILE")
            rc_path = Path(env_path) if env_path else Path.home() / RC_FILE_NAME
        self.rc_path = rc_path
        self._data: Optional[dict[str, Any]] = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self.rc_path.exists():
            logger.debug("No credentials file at %s", self.rc_path)
            self._data = {}
            return self._data

        try:
            with open(self.rc_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise TncStateError(
                f"Credentials file {self.rc_path} is not valid JSON: {e}"
            ) from e

        if not isinstance(data, dict):
            raise TncStateError(f"Credentials file {self.rc_path} must hold an object")
        self._data = data
        return self._data

    def reload(self) -> None:
        """Forget cached values so the next access re-reads the file."""
        self._data = None

    @property
    def token(self) -> Optional[str]:
        return os.environ.get("TNC_TOKEN") or self._load().get("token")

    @property
    def email(self) -> Optional[str]:
        return os.environ.get("TNC_EMAIL") or self._load().get("email")

    @property
    def api_url(self) -> str:
        url = os.environ.get("TNC_API_URL") or self._load().get("apiUrl")
        return (url or DEFAULT_API_URL).rstrip("/")

    def is_logged_in(self) -> bool:
        """Return True if both a token and an email are available."""
        return bool(self.token and self.email)

    def require_credentials(self) -> tuple[str, str]:
        """Return (token, email) or raise if the user is not logged in.

        Raises:
            TncConfigError: If no credentials are configured
        """
        token, email = self.token, self.email
        if not token or not email:
            raise TncConfigError(
                f"Not logged in. Add token and email to {self.rc_path} "
                "or set TNC_TOKEN and TNC_EMAIL."
            )
        return token, email


config = Config()
