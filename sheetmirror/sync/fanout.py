"""Delivery of refresh requests to sibling documents.

After Airtable changes, every document mirroring the same table is refreshed.
By default each refresh goes through this service's own ``/refresh``
endpoint, so sibling updates run as independent units of work.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import httpx

from ..config import HTTPConfig
from ..models import Connection
from ..stores.base import send_request

logger = logging.getLogger(__name__)


class RefreshDispatcher(ABC):
    """Sends one sibling document its refresh."""

    @abstractmethod
    async def dispatch(self, connection: Connection) -> None:
        """Trigger a refresh of ``connection``'s document.

        Raises:
            SheetMirrorError: The refresh could not be delivered or failed.
        """
        pass

    async def close(self) -> None:
        pass


class HttpRefreshDispatcher(RefreshDispatcher):
    """POSTs the sibling's stored connection fields to the refresh endpoint."""

    def __init__(
        self,
        refresh_url: str,
        http_config: HTTPConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the dispatcher.

        Args:
            refresh_url: Absolute URL of the refresh endpoint.
            http_config: Timeout settings.
            client: Optional pre-built HTTP client (tests inject one).
        """
        self.refresh_url = refresh_url
        self._timeout = (http_config or HTTPConfig()).timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def dispatch(self, connection: Connection) -> None:
        client = await self._get_client()
        await send_request(
            client,
            "sheetmirror-refresh",
            "POST",
            self.refresh_url,
            json=connection.to_payload(),
        )
        logger.debug(f"Refresh dispatched for document {connection.document_id}")


class LocalRefreshDispatcher(RefreshDispatcher):
    """Runs the refresh in this process."""

    def __init__(self, refresh: Callable[[Connection], Awaitable[Any]]):
        self._refresh = refresh

    async def dispatch(self, connection: Connection) -> None:
        await self._refresh(connection)
