"""Bearer tokens for the Google Sheets and Drive APIs.

google-auth is synchronous, so token refreshes run in a worker thread to keep
the event loop responsive.
"""

import asyncio
import logging

import google.auth
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from ..config import GoogleConfig
from ..errors import AdapterUnavailable

logger = logging.getLogger(__name__)


class GoogleTokenProvider:
    """Mints and caches OAuth access tokens for the configured identity."""

    def __init__(self, config: GoogleConfig):
        """Initialize the token provider.

        Args:
            config: Google section of the configuration. When
                ``credentials_file`` is unset, application default
                credentials are used.
        """
        self._config = config
        self._credentials = None
        self._lock = asyncio.Lock()

    def _load_credentials(self):
        if self._config.credentials_file:
            return service_account.Credentials.from_service_account_file(
                self._config.credentials_file,
                scopes=self._config.scopes,
            )
        credentials, _project = google.auth.default(scopes=self._config.scopes)
        return credentials

    async def get_token(self) -> str:
        """Return a valid access token, refreshing when needed."""
        async with self._lock:
            try:
                if self._credentials is None:
                    self._credentials = await asyncio.to_thread(self._load_credentials)
                if not self._credentials.valid:
                    await asyncio.to_thread(self._credentials.refresh, Request())
                    logger.debug("Refreshed Google access token")
            except (GoogleAuthError, OSError, ValueError) as e:
                raise AdapterUnavailable("google-auth", str(e)) from e

            return self._credentials.token
