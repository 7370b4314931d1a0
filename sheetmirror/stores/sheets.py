"""Google Sheets side of the mirror.

Reads and overwrites one range of a spreadsheet through the Sheets v4
values API. Overwrites clear the range first so rows removed upstream do not
linger below the new content.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..config import GoogleConfig, HTTPConfig
from ..models import Table
from .base import TableAdapter, send_request
from .google_auth import GoogleTokenProvider

logger = logging.getLogger(__name__)


class SheetsAdapter(TableAdapter[str]):
    """Table adapter for a Google Sheet, addressed by spreadsheet id."""

    store_name = "google-sheets"

    def __init__(
        self,
        config: GoogleConfig,
        tokens: GoogleTokenProvider,
        http_config: HTTPConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the adapter.

        Args:
            config: Google section of the configuration.
            tokens: Source of bearer tokens.
            http_config: Timeout settings.
            client: Optional pre-built HTTP client (tests inject one).
        """
        self._config = config
        self._tokens = tokens
        self._timeout = (http_config or HTTPConfig()).timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.sheets_base_url.rstrip("/"),
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

    def _values_path(self, document_id: str) -> str:
        sheet_range = quote(self._config.sheet_range, safe="!:")
        return f"/spreadsheets/{document_id}/values/{sheet_range}"

    async def fetch(self, locator: str) -> Table:
        client = await self._get_client()
        response = await send_request(
            client,
            self.store_name,
            "GET",
            self._values_path(locator),
            params={
                "majorDimension": "ROWS",
                "valueRenderOption": "UNFORMATTED_VALUE",
            },
            headers=await self._headers(),
        )

        values: list[list[Any]] = response.json().get("values", [])
        table = Table.from_values(values)
        logger.debug(f"Fetched {len(table.rows)} rows from sheet {locator}")
        return table

    async def replace(self, locator: str, table: Table) -> None:
        # Re-validate: callers may have mutated rows after construction
        table = Table(header=table.header, rows=table.rows)

        client = await self._get_client()
        headers = await self._headers()
        path = self._values_path(locator)

        await send_request(client, self.store_name, "POST", f"{path}:clear", headers=headers)

        if table.is_empty:
            logger.debug(f"Cleared sheet {locator}; nothing to write")
            return

        await send_request(
            client,
            self.store_name,
            "PUT",
            path,
            params={"valueInputOption": "USER_ENTERED"},
            json={
                "range": self._config.sheet_range,
                "majorDimension": "ROWS",
                "values": table.to_values(),
            },
            headers=headers,
        )
        logger.debug(f"Wrote {len(table.rows)} rows to sheet {locator}")
