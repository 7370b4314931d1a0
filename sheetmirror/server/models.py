"""Pydantic models for the inbound request bodies.

Field aliases match the camelCase names callers send; the refresh body is
also what sibling fan-out posts (see ``Connection.to_payload``).
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..models import Connection


class ConnectionRequest(BaseModel):
    """Body of ``POST /connect`` and ``POST /refresh``."""

    store_api_key: str = Field(alias="storeApiKey", min_length=1)
    container_id: str = Field(alias="containerId", min_length=1)
    table_id: str = Field(alias="tableId", min_length=1)
    document_id: str = Field(alias="documentId", min_length=1)

    model_config = {"populate_by_name": True}

    def to_connection(self) -> Connection:
        return Connection(
            document_id=self.document_id,
            store_api_key=self.store_api_key,
            store_container_id=self.container_id,
            table_id=self.table_id,
        )


class ConnectionSummary(BaseModel):
    """A registered connection without its API key."""

    document_id: str
    container_id: str
    table_id: str
