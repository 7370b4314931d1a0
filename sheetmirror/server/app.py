"""FastAPI application exposing the connect, notification and refresh endpoints."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from ..config import Config
from ..errors import (
    AdapterUnavailable,
    HistoryUnavailable,
    InconsistentSchema,
    MalformedTable,
    RegistryLookupMiss,
    SheetMirrorError,
    UnresolvableNotification,
)
from ..notifier import parse_notification
from ..registry import ConnectionRegistry
from ..sync import SyncOrchestrator
from .models import ConnectionRequest, ConnectionSummary

logger = logging.getLogger(__name__)

SUCCESS = "success"

# Status code reported for each failure kind
ERROR_STATUS: dict[type[SheetMirrorError], int] = {
    UnresolvableNotification: 400,
    RegistryLookupMiss: 404,
    MalformedTable: 422,
    InconsistentSchema: 422,
    AdapterUnavailable: 502,
    HistoryUnavailable: 502,
}


def _status_for(error: SheetMirrorError) -> int:
    for kind, status in ERROR_STATUS.items():
        if isinstance(error, kind):
            return status
    return 500


def create_app(
    config: Config,
    orchestrator: SyncOrchestrator,
    registry: ConnectionRegistry,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Application configuration.
        orchestrator: Sync engine the endpoints drive.
        registry: Connection registry (for listing and health).

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="sheetmirror",
        description="Keeps Google Sheets mirrored with Airtable tables",
        version="0.1.0",
    )

    # Store references for route handlers
    app.state.config = config
    app.state.orchestrator = orchestrator
    app.state.registry = registry

    @app.exception_handler(SheetMirrorError)
    async def sheetmirror_error(request: Request, exc: SheetMirrorError):
        status = _status_for(exc)
        logger.error(f"{request.method} {request.url.path} failed ({status}): {exc}")
        return PlainTextResponse(f"failure: {exc}", status_code=status)

    # ==================== Sync endpoints ====================

    @app.post("/connect", response_class=PlainTextResponse)
    async def connect(body: ConnectionRequest) -> str:
        """Connect a sheet to an Airtable table and start watching it."""
        await orchestrator.connect(
            body.to_connection(),
            callback_address=config.service.notification_url,
        )
        return SUCCESS

    @app.post(config.service.notification_path, response_class=PlainTextResponse)
    async def receive_notification(request: Request) -> str:
        """Receive a Drive push notification for a watched sheet."""
        notification = parse_notification(request.headers)
        logger.debug(
            f"Notification for {notification.document_id} "
            f"(state={notification.resource_state}, channel={notification.channel_id})"
        )
        await orchestrator.handle_notification(notification)
        return SUCCESS

    @app.post(config.service.refresh_path, response_class=PlainTextResponse)
    async def refresh(body: ConnectionRequest) -> str:
        """Overwrite a sheet with the current Airtable content."""
        await orchestrator.refresh(body.to_connection())
        return SUCCESS

    # ==================== API Routes (JSON) ====================

    @app.get("/api/connections")
    async def api_connections() -> dict[str, Any]:
        """List registered connections (API keys omitted)."""
        connections = [
            ConnectionSummary(
                document_id=c.document_id,
                container_id=c.store_container_id,
                table_id=c.table_id,
            ).model_dump()
            for c in registry.list_all()
        ]
        return {"count": len(connections), "connections": connections}

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring and load balancers."""
        health: dict[str, Any] = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "components": {},
        }

        try:
            health["components"]["registry"] = registry.get_stats()
        except Exception as e:
            health["status"] = "degraded"
            health["components"]["registry_error"] = str(e)

        return health

    return app
