"""Wiring of the sheetmirror components from a Config."""

import logging

from .config import Config
from .notifier import ChangeNotifier, RenewalLoop
from .registry import ConnectionRegistry
from .stores import AirtableAdapter, DriveClient, GoogleTokenProvider, SheetsAdapter
from .sync import (
    HttpRefreshDispatcher,
    LocalRefreshDispatcher,
    LoopGuard,
    SyncOrchestrator,
)

logger = logging.getLogger(__name__)


class Service:
    """Owns every component built from one configuration."""

    def __init__(self, config: Config, registry: ConnectionRegistry | None = None):
        """Build the component graph.

        Args:
            config: Loaded configuration; passed explicitly to each component.
            registry: Optional pre-built registry (tests pass an in-memory one).
        """
        self.config = config
        self.registry = registry or ConnectionRegistry(config.registry.db_path)

        self.tokens = GoogleTokenProvider(config.google)
        self.sheets = SheetsAdapter(config.google, self.tokens, config.http)
        self.drive = DriveClient(config.google, self.tokens, config.http)
        self.airtable = AirtableAdapter(config.airtable, config.http)

        self.notifier = ChangeNotifier(self.drive, config.watch)
        self.loop_guard = LoopGuard(self.drive, config.google.service_identity)

        self.orchestrator = SyncOrchestrator(
            sheets=self.sheets,
            airtable=self.airtable,
            registry=self.registry,
            notifier=self.notifier,
            loop_guard=self.loop_guard,
            config=config.sync,
        )
        if config.sync.fanout_mode == "http":
            self.orchestrator.dispatcher = HttpRefreshDispatcher(
                config.service.refresh_url, config.http
            )
        else:
            self.orchestrator.dispatcher = LocalRefreshDispatcher(self.orchestrator.refresh)

        self.renewal = RenewalLoop(
            self.notifier,
            self.registry,
            callback_address=config.service.notification_url,
            interval_minutes=config.watch.renew_interval_minutes,
        )

    async def start(self, with_renewal: bool = False) -> None:
        """Open the registry and optionally start channel renewal."""
        self.registry.connect()
        if with_renewal and self.config.watch.renew_enabled:
            await self.renewal.start()

    async def stop(self) -> None:
        """Stop background work and release connections."""
        await self.renewal.stop()
        await self.orchestrator.dispatcher.close()
        await self.sheets.close()
        await self.drive.close()
        await self.airtable.close()
        self.registry.close()
        logger.debug("Service stopped")
