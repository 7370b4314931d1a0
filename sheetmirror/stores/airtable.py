"""Airtable side of the mirror.

Uses the REST API directly. Reads page through the ``offset`` cursor lazily;
writes go through the record reconciler and are sent as concurrent batches
of at most 10 records, updates and creates side by side.

``push`` only updates and creates, which is what a sheet edit needs.
``replace`` overwrites: it also deletes records the table no longer holds.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx

from ..config import AirtableConfig, HTTPConfig
from ..models import EMPTY, ID_FIELD, Connection, Record, Table
from ..sync.reconciler import BATCH_SIZE, Partition, chunk, partition, to_records
from .base import TableAdapter, send_request

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    """Outcome of pushing a table's records into Airtable."""

    updated: int = 0
    created: int = 0
    deleted: int = 0
    batches: int = 0


def _grid_value(value: Any) -> Any:
    """Render an Airtable cell value for the grid."""
    if value is None:
        return EMPTY
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


def _field_value(value: Any) -> Any:
    """Render a grid cell for Airtable; empty cells clear the field.

    Cells holding JSON arrays or objects (multi-selects, linked records,
    attachments rendered by ``_grid_value``) are decoded back.
    """
    if value == EMPTY:
        return None
    if isinstance(value, str) and value.lstrip()[:1] in ("[", "{"):
        try:
            decoded = json.loads(value)
        except ValueError:
            return value
        if isinstance(decoded, (list, dict)):
            return decoded
    return value


def _field_values(record: Record) -> dict[str, Any]:
    return {
        key: _field_value(value)
        for key, value in record.without_id().fields.items()
        if str(key).strip()
    }


def _same_content(record: Record, existing: dict[str, Any]) -> bool:
    """True when a row carries exactly the fields of an existing record."""
    fields = _field_values(record)
    for key in set(fields) | set(existing):
        if fields.get(key) != existing.get(key):
            return False
    return True


class AirtableAdapter(TableAdapter[Connection]):
    """Table adapter for an Airtable table, addressed by a Connection."""

    store_name = "airtable"

    def __init__(
        self,
        config: AirtableConfig,
        http_config: HTTPConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the adapter.

        Args:
            config: Airtable section of the configuration.
            http_config: Timeout settings.
            client: Optional pre-built HTTP client (tests inject one).
        """
        self._config = config
        self._timeout = (http_config or HTTPConfig()).timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.endpoint_url.rstrip("/"),
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _path(locator: Connection) -> str:
        return f"/v0/{locator.store_container_id}/{locator.table_id}"

    @staticmethod
    def _headers(locator: Connection) -> dict[str, str]:
        return {"Authorization": f"Bearer {locator.store_api_key}"}

    async def iter_pages(self, locator: Connection) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield pages of raw records on demand.

        Each call starts from the first page, so the sequence can be
        restarted by iterating again.
        """
        client = await self._get_client()
        params: dict[str, Any] = {
            "view": self._config.view,
            "maxRecords": self._config.max_records,
            "pageSize": self._config.page_size,
        }

        while True:
            response = await send_request(
                client,
                self.store_name,
                "GET",
                self._path(locator),
                params=params,
                headers=self._headers(locator),
            )
            data = response.json()
            yield data.get("records", [])

            offset = data.get("offset")
            if not offset:
                break
            params = {**params, "offset": offset}

    async def fetch(self, locator: Connection) -> Table:
        records: list[Record] = []
        async for page in self.iter_pages(locator):
            for raw in page:
                records.append(Record({ID_FIELD: raw["id"], **raw.get("fields", {})}))

        # Airtable omits empty fields, so the header is the union across records
        header = [ID_FIELD]
        for record in records:
            for key in record.fields:
                if key not in header:
                    header.append(key)

        rows = [
            [_grid_value(record.fields.get(key)) for key in header]
            for record in records
        ]
        logger.debug(
            f"Fetched {len(rows)} records from Airtable table {locator.table_id}"
        )
        return Table(header=header, rows=rows)

    async def replace(self, locator: Connection, table: Table) -> PushResult:
        """Make the Airtable table hold exactly the rows of ``table``.

        Rows with the ``id`` of an existing record update it (unchanged
        records are not sent). Other rows are created, unless an existing
        record not claimed by any id already has the same content, in which
        case that record is kept. Every remaining record is deleted.
        Repeating the call with the same table changes nothing.
        """
        table = Table(header=table.header, rows=table.rows)
        existing: dict[str, dict[str, Any]] = {}
        async for page in self.iter_pages(locator):
            for raw in page:
                existing[raw["id"]] = raw.get("fields", {})

        split = Partition()
        candidates: list[Record] = []
        claimed: set[str] = set()
        for record in to_records(table):
            if record.has_identity and record.id in existing:
                claimed.add(record.id)
                if not _same_content(record, existing[record.id]):
                    split.updates.append(record)
            else:
                candidates.append(record.without_id())

        unclaimed = [rid for rid in existing if rid not in claimed]
        for record in candidates:
            match = next(
                (rid for rid in unclaimed if _same_content(record, existing[rid])),
                None,
            )
            if match is None:
                split.inserts.append(record)
            else:
                unclaimed.remove(match)

        return await self.apply(locator, split, deletes=unclaimed)

    async def push(self, locator: Connection, table: Table) -> PushResult:
        """Apply a table to Airtable as updates and creates.

        Rows with an ``id`` update the matching record, rows without one
        create a new record. Records absent from the table are left alone.

        All batches run concurrently and are all awaited. If any batch
        fails, the first failure (in batch order) is raised after the rest
        have settled, so some batches may already have been applied.
        """
        table = Table(header=table.header, rows=table.rows)
        split = partition(to_records(table))
        return await self.apply(locator, split)

    async def apply(
        self,
        locator: Connection,
        split: Partition,
        deletes: list[str] | None = None,
    ) -> PushResult:
        """Send a partition's update and insert batches, plus record deletions."""
        client = await self._get_client()
        semaphore = asyncio.Semaphore(max(1, self._config.max_concurrent_requests))

        async def send(method: str, batch: list[Record]) -> int:
            payload: dict[str, Any] = {
                "records": [self._record_payload(r, with_id=(method == "PATCH")) for r in batch]
            }
            if self._config.typecast:
                payload["typecast"] = True
            async with semaphore:
                await send_request(
                    client,
                    self.store_name,
                    method,
                    self._path(locator),
                    json=payload,
                    headers=self._headers(locator),
                )
            return len(batch)

        async def delete(batch: list[str]) -> int:
            async with semaphore:
                await send_request(
                    client,
                    self.store_name,
                    "DELETE",
                    self._path(locator),
                    params=[("records[]", record_id) for record_id in batch],
                    headers=self._headers(locator),
                )
            return len(batch)

        update_batches = split.update_batches(BATCH_SIZE)
        insert_batches = split.insert_batches(BATCH_SIZE)
        delete_batches = chunk(deletes or [], BATCH_SIZE)
        jobs = [send("PATCH", b) for b in update_batches]
        jobs += [send("POST", b) for b in insert_batches]
        jobs += [delete(b) for b in delete_batches]

        outcomes = await asyncio.gather(*jobs, return_exceptions=True)

        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            applied = len(outcomes) - len(failures)
            logger.error(
                f"Airtable write to {locator.table_id}: {len(failures)} of "
                f"{len(outcomes)} batches failed, {applied} applied"
            )
            raise failures[0]

        n_updates = len(update_batches)
        n_inserts = len(insert_batches)
        result = PushResult(
            updated=sum(outcomes[:n_updates]),
            created=sum(outcomes[n_updates:n_updates + n_inserts]),
            deleted=sum(outcomes[n_updates + n_inserts:]),
            batches=len(outcomes),
        )
        logger.info(
            f"Airtable write to {locator.table_id}: {result.updated} updated, "
            f"{result.created} created, {result.deleted} deleted "
            f"in {result.batches} batches"
        )
        return result

    @staticmethod
    def _record_payload(record: Record, with_id: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {"fields": _field_values(record)}
        if with_id:
            payload["id"] = record.id
        return payload
