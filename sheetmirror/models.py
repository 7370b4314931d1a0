"""Core data types shared by the stores, registry and sync engine."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .errors import MalformedTable

# Reserved column carrying the external store's record identity
ID_FIELD = "id"

# Explicit empty value for absent cells
EMPTY = ""


@dataclass
class Table:
    """A header row followed by positionally aligned rows."""

    header: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.header = list(self.header)
        self.rows = [list(row) for row in self.rows]
        width = len(self.header)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise MalformedTable(
                    f"Row {index + 1} has {len(row)} cells, header has {width}"
                )

    @classmethod
    def from_values(cls, values: list[list[Any]] | None) -> "Table":
        """Build a table from a raw row-major grid.

        Stores that drop trailing empty cells (Sheets does) produce short
        rows; those are padded with explicit empty values. A row wider than
        the header cannot be aligned and is rejected.
        """
        if not values:
            return cls()

        header = [str(h) for h in values[0]]
        width = len(header)
        rows = []
        for index, row in enumerate(values[1:]):
            row = list(row)
            if len(row) > width:
                raise MalformedTable(
                    f"Row {index + 1} has {len(row)} cells, header has {width}"
                )
            rows.append(row + [EMPTY] * (width - len(row)))
        return cls(header=header, rows=rows)

    def to_values(self) -> list[list[Any]]:
        """Return the grid form: header row then data rows."""
        return [list(self.header), *[list(row) for row in self.rows]]

    @property
    def is_empty(self) -> bool:
        return not self.header and not self.rows


@dataclass
class Record:
    """A keyed row. Identity lives in the reserved ``id`` field."""

    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str | None:
        value = self.fields.get(ID_FIELD)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def has_identity(self) -> bool:
        return self.id is not None

    def without_id(self) -> "Record":
        """Copy of this record with the identity field removed."""
        return Record({k: v for k, v in self.fields.items() if k != ID_FIELD})


@dataclass(frozen=True)
class Connection:
    """Mapping from a document to the external table it mirrors."""

    document_id: str
    store_api_key: str
    store_container_id: str
    table_id: str

    def to_payload(self) -> dict[str, str]:
        """Serialize using the refresh endpoint's field names."""
        return {
            "storeApiKey": self.store_api_key,
            "containerId": self.store_container_id,
            "tableId": self.table_id,
            "documentId": self.document_id,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Connection":
        return cls(
            document_id=data["documentId"],
            store_api_key=data["storeApiKey"],
            store_container_id=data["containerId"],
            table_id=data["tableId"],
        )

    def __repr__(self) -> str:
        # Keep API keys out of logs and tracebacks
        return (
            f"Connection(document_id={self.document_id!r}, "
            f"store_container_id={self.store_container_id!r}, "
            f"table_id={self.table_id!r})"
        )


@dataclass
class Subscription:
    """A change-watch channel registered with the document service."""

    document_id: str
    channel_id: str
    resource_id: str | None
    expires_at: datetime
    callback_address: str

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now()) >= self.expires_at

    def needs_renewal(self, margin_seconds: float, now: datetime | None = None) -> bool:
        """True once the channel is within ``margin_seconds`` of expiry."""
        now = now or datetime.now()
        return now + timedelta(seconds=margin_seconds) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "channel_id": self.channel_id,
            "resource_id": self.resource_id,
            "expires_at": self.expires_at.isoformat(),
            "callback_address": self.callback_address,
        }
