"""Shared fixtures: in-memory stand-ins for the Sheets and Airtable APIs."""

import json
from datetime import datetime, timedelta

import httpx
import pytest

from sheetmirror.config import AirtableConfig
from sheetmirror.models import Subscription, Table
from sheetmirror.registry import ConnectionRegistry
from sheetmirror.stores.airtable import AirtableAdapter
from sheetmirror.stores.base import TableAdapter


class FakeAirtableAPI:
    """Minimal Airtable REST API served through httpx.MockTransport."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.requests: list[tuple[str, str, dict | None]] = []
        self.fail_methods: dict[str, int] = {}
        self._next_id = 1

    def seed(self, table_id: str, records: list[dict]) -> None:
        self.tables[table_id] = [dict(r) for r in records]

    def writes(self, method: str | None = None) -> list[dict]:
        return [
            body for m, _path, body in self.requests
            if m in ("PATCH", "POST") and (method is None or m == method)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.strip("/").split("/")
        table_id = parts[2]
        body = json.loads(request.content) if request.content else None
        if request.method == "DELETE":
            body = {"records": request.url.params.get_list("records[]")}
        self.requests.append((request.method, request.url.path, body))

        if request.method in self.fail_methods:
            return httpx.Response(self.fail_methods[request.method], text="rejected")

        records = self.tables.setdefault(table_id, [])

        if request.method == "GET":
            page_size = int(request.url.params.get("pageSize", 100))
            offset = int(request.url.params.get("offset", 0))
            page = records[offset:offset + page_size]
            data = {"records": page}
            if offset + page_size < len(records):
                data["offset"] = str(offset + page_size)
            return httpx.Response(200, json=data)

        if request.method == "PATCH":
            by_id = {r["id"]: r for r in records}
            for update in body["records"]:
                target = by_id[update["id"]]
                target["fields"] = {**target.get("fields", {}), **update["fields"]}
            return httpx.Response(200, json={"records": body["records"]})

        if request.method == "DELETE":
            doomed = set(request.url.params.get_list("records[]"))
            deleted = [{"id": r["id"], "deleted": True} for r in records if r["id"] in doomed]
            self.tables[table_id] = [r for r in records if r["id"] not in doomed]
            return httpx.Response(200, json={"records": deleted})

        if request.method == "POST":
            created = []
            for new in body["records"]:
                record = {"id": f"rec{self._next_id}", "fields": dict(new["fields"])}
                self._next_id += 1
                records.append(record)
                created.append(record)
            return httpx.Response(200, json={"records": created})

        return httpx.Response(405)


class FakeSheets(TableAdapter[str]):
    """In-memory document store."""

    store_name = "fake-sheets"

    def __init__(self):
        self.tables: dict[str, Table] = {}
        self.replaced: list[tuple[str, Table]] = []
        self.fail_for: set[str] = set()

    async def fetch(self, locator: str) -> Table:
        return self.tables.get(locator, Table())

    async def replace(self, locator: str, table: Table) -> None:
        if locator in self.fail_for:
            from sheetmirror.errors import AdapterUnavailable

            raise AdapterUnavailable(self.store_name, "sheet is read-only", status_code=403)
        self.replaced.append((locator, table))
        self.tables[locator] = table


@pytest.fixture
def airtable_api():
    """Fake Airtable API state."""
    return FakeAirtableAPI()


@pytest.fixture
def airtable(airtable_api):
    """AirtableAdapter talking to the fake API."""
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(airtable_api.handler),
        base_url="https://airtable.test",
    )
    return AirtableAdapter(AirtableConfig(), client=client)


@pytest.fixture
def sheets():
    """In-memory sheets store."""
    return FakeSheets()


@pytest.fixture
def registry():
    """Create an in-memory ConnectionRegistry."""
    registry = ConnectionRegistry(":memory:")
    registry.connect()
    yield registry
    registry.close()


@pytest.fixture
def make_subscription():
    """Factory for Subscriptions expiring ``hours`` from now."""

    def _make(document_id: str, hours: float = 24, channel_id: str = "chan-1") -> Subscription:
        return Subscription(
            document_id=document_id,
            channel_id=channel_id,
            resource_id=f"res-{channel_id}",
            expires_at=datetime.now() + timedelta(hours=hours),
            callback_address="https://mirror.test/notifications",
        )

    return _make
