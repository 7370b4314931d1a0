"""Conversion between the grid form and the keyed-record form.

The grid form is what the document store holds; the record form is what the
external table store accepts. Records carrying an identity are updates,
records without one are inserts.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence, TypeVar

from ..errors import InconsistentSchema
from ..models import EMPTY, Record, Table

logger = logging.getLogger(__name__)

# Airtable accepts at most 10 records per create/update request
BATCH_SIZE = 10

T = TypeVar("T")


@dataclass
class Partition:
    """Records split by whether they already exist in the external store."""

    updates: list[Record] = field(default_factory=list)
    inserts: list[Record] = field(default_factory=list)

    def update_batches(self, size: int = BATCH_SIZE) -> list[list[Record]]:
        return chunk(self.updates, size)

    def insert_batches(self, size: int = BATCH_SIZE) -> list[list[Record]]:
        return chunk(self.inserts, size)


def to_records(table: Table) -> list[Record]:
    """Zip each row with the header into a Record."""
    return [Record(dict(zip(table.header, row))) for row in table.rows]


def to_table(records: Sequence[Record], header: Sequence[str] | None = None) -> Table:
    """Render records as a table.

    Args:
        records: Records in the order their rows should appear.
        header: Explicit column order. When omitted, the header is the union
            of all record keys in first-seen order, so an empty record list
            yields an empty table; pass the header to keep its columns.

    Returns:
        Table with missing keys rendered as empty cells.

    Raises:
        InconsistentSchema: A key is blank or not a string, or a record
            carries a key outside an explicit header.
    """
    if header is None:
        columns: list[str] = []
        seen: set[str] = set()
        for record in records:
            for key in record.fields:
                if key not in seen:
                    seen.add(key)
                    columns.append(key)
    else:
        columns = list(header)
        allowed = set(columns)
        for index, record in enumerate(records):
            extra = [k for k in record.fields if k not in allowed]
            if extra:
                raise InconsistentSchema(
                    f"Record {index} has fields {extra} outside header {columns}"
                )

    for key in columns:
        if not isinstance(key, str) or not key.strip():
            raise InconsistentSchema(f"Invalid column name: {key!r}")

    rows = [[record.fields.get(key, EMPTY) for key in columns] for record in records]
    return Table(header=columns, rows=rows)


def partition(records: Iterable[Record]) -> Partition:
    """Split records into updates (have identity) and inserts (do not).

    Inserts have their identity field stripped so nothing carrying an ``id``
    ever reaches the create path.
    """
    result = Partition()
    for record in records:
        if record.has_identity:
            result.updates.append(record)
        else:
            result.inserts.append(record.without_id())

    logger.debug(
        f"Partitioned records: {len(result.updates)} updates, "
        f"{len(result.inserts)} inserts"
    )
    return result


def chunk(items: Sequence[T], size: int = BATCH_SIZE) -> list[list[T]]:
    """Group items into consecutive batches of at most ``size``."""
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
