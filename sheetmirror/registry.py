"""Durable mapping from a document to the Airtable table it mirrors.

One row per document. Reconnecting a document replaces its row; nothing in
the sync flow updates rows in place or deletes them.
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import RegistryLookupMiss
from .models import Connection

logger = logging.getLogger(__name__)

REGISTRY_SCHEMA = """
CREATE TABLE IF NOT EXISTS connections (
    document_id TEXT PRIMARY KEY,
    store_api_key TEXT NOT NULL,
    store_container_id TEXT NOT NULL,
    table_id TEXT NOT NULL,
    connected_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_connections_table ON connections(table_id);
"""


class ConnectionRegistry:
    """SQLite-backed connection registry.

    Each statement commits on its own, so reads and writes are individually
    atomic; no multi-key transactions are needed.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the registry.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Handlers may run on a different thread than the one that opened us
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(REGISTRY_SCHEMA)
        self._conn.commit()

        logger.info(f"ConnectionRegistry connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    @staticmethod
    def _row_to_connection(row: sqlite3.Row) -> Connection:
        return Connection(
            document_id=row["document_id"],
            store_api_key=row["store_api_key"],
            store_container_id=row["store_container_id"],
            table_id=row["table_id"],
        )

    def save(self, connection: Connection) -> None:
        """Store a connection, replacing any previous one for the document."""
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT OR REPLACE INTO connections (
                document_id, store_api_key, store_container_id, table_id, connected_at
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                connection.document_id,
                connection.store_api_key,
                connection.store_container_id,
                connection.table_id,
                datetime.now().isoformat(),
            ),
        )
        conn.commit()
        logger.debug(f"Saved connection for document {connection.document_id}")

    def find_by_document(self, document_id: str) -> Connection | None:
        """Get the connection for a document, or None."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT * FROM connections WHERE document_id = ?",
            (document_id,),
        ).fetchone()
        return self._row_to_connection(row) if row else None

    def get(self, document_id: str) -> Connection:
        """Get the connection for a document.

        Raises:
            RegistryLookupMiss: No connection is registered.
        """
        connection = self.find_by_document(document_id)
        if connection is None:
            raise RegistryLookupMiss(document_id)
        return connection

    def find_siblings(self, table_id: str) -> list[Connection]:
        """All connections mirroring ``table_id``, the caller's own included."""
        conn = self._ensure_connected()
        rows = conn.execute(
            "SELECT * FROM connections WHERE table_id = ? ORDER BY connected_at, document_id",
            (table_id,),
        ).fetchall()
        return [self._row_to_connection(r) for r in rows]

    def list_all(self) -> list[Connection]:
        conn = self._ensure_connected()
        rows = conn.execute(
            "SELECT * FROM connections ORDER BY table_id, connected_at, document_id"
        ).fetchall()
        return [self._row_to_connection(r) for r in rows]

    def delete(self, document_id: str) -> bool:
        """Remove a document's connection.

        Returns:
            True if a connection was removed.
        """
        conn = self._ensure_connected()
        cursor = conn.execute(
            "DELETE FROM connections WHERE document_id = ?",
            (document_id,),
        )
        conn.commit()
        return cursor.rowcount > 0

    def get_stats(self) -> dict[str, Any]:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT COUNT(*) AS documents, COUNT(DISTINCT table_id) AS tables FROM connections"
        ).fetchone()
        return {"connections": row["documents"], "tables": row["tables"]}
