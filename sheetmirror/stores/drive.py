"""Google Drive calls: revision history and change-watch channels."""

import logging
import uuid
from datetime import datetime
from typing import Any, AsyncIterator

import httpx

from ..config import GoogleConfig, HTTPConfig
from .base import send_request
from .google_auth import GoogleTokenProvider

logger = logging.getLogger(__name__)

STORE = "google-drive"


class DriveClient:
    """Thin async wrapper over the Drive v3 REST endpoints we use."""

    def __init__(
        self,
        config: GoogleConfig,
        tokens: GoogleTokenProvider,
        http_config: HTTPConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._config = config
        self._tokens = tokens
        self._timeout = (http_config or HTTPConfig()).timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.drive_base_url.rstrip("/"),
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _headers(self) -> dict[str, str]:
        token = await self._tokens.get_token()
        return {"Authorization": f"Bearer {token}"}

    async def iter_revisions(
        self, file_id: str, page_size: int = 1000
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield pages of revisions, oldest first, fetching on demand."""
        client = await self._get_client()
        params: dict[str, Any] = {"fields": "*", "pageSize": page_size}

        while True:
            response = await send_request(
                client,
                STORE,
                "GET",
                f"/files/{file_id}/revisions",
                params=params,
                headers=await self._headers(),
            )
            data = response.json()
            yield data.get("revisions", [])

            token = data.get("nextPageToken")
            if not token:
                break
            params = {**params, "pageToken": token}

    async def watch_file(
        self, file_id: str, address: str, expires_at: datetime
    ) -> dict[str, Any]:
        """Open a web_hook channel that reports changes to ``file_id``.

        Returns:
            The channel resource returned by Drive (id, resourceId, expiration).
        """
        client = await self._get_client()
        body = {
            "kind": "api#channel",
            "id": str(uuid.uuid4()),
            "type": "web_hook",
            "address": address,
            "expiration": int(expires_at.timestamp() * 1000),
        }
        response = await send_request(
            client,
            STORE,
            "POST",
            f"/files/{file_id}/watch",
            json=body,
            headers=await self._headers(),
        )
        channel = response.json()
        # Drive echoes the request fields; fall back to ours if it does not
        channel.setdefault("id", body["id"])
        channel.setdefault("expiration", str(body["expiration"]))
        return channel

    async def stop_channel(self, channel_id: str, resource_id: str) -> None:
        client = await self._get_client()
        await send_request(
            client,
            STORE,
            "POST",
            "/channels/stop",
            json={"id": channel_id, "resourceId": resource_id},
            headers=await self._headers(),
        )
