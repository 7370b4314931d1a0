"""Top-level coordinator of the sheet/Airtable mirror.

Three entry points, each an independent unit of work:

- connect: register a sheet, fill it from Airtable, start watching it
- handle_notification: push a changed sheet into Airtable, then refresh
  every sheet mirroring the same table
- refresh: overwrite one sheet with Airtable's current content

Failures in required steps are raised to the caller. Failures refreshing
sibling sheets are collected and reported, never raised, because the sheet
that triggered the notification has already been applied.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..config import SyncConfig
from ..models import Connection, Subscription
from .fanout import LocalRefreshDispatcher, RefreshDispatcher

if TYPE_CHECKING:
    from ..notifier import ChangeNotification, ChangeNotifier
    from ..registry import ConnectionRegistry
    from ..stores.airtable import AirtableAdapter
    from ..stores.sheets import SheetsAdapter
    from .loop_guard import LoopGuard

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Phases a unit of work passes through."""

    IDLE = "idle"
    CONNECTING = "connecting"
    WATCHING = "watching"
    PROCESSING_NOTIFICATION = "processing_notification"
    PROPAGATING = "propagating"


class SyncStatus(Enum):
    """Outcome of a unit of work."""

    SUCCESS = "success"
    SKIPPED = "skipped"  # Nothing to do (own edit, handshake, superseded channel)
    PARTIAL = "partial"  # Applied, but some sibling refreshes failed
    FAILED = "failed"


@dataclass
class FanOutReport:
    """Aggregate result of refreshing sibling documents."""

    targets: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> list[str]:
        return [t for t in self.targets if t not in self.failures]


@dataclass
class SyncResult:
    """Result of a unit of work."""

    status: SyncStatus
    document_id: str
    states: list[SyncState] = field(default_factory=list)
    records_updated: int = 0
    records_created: int = 0
    fanout: FanOutReport | None = None
    subscription: Subscription | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        return self.status != SyncStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "document_id": self.document_id,
            "states": [s.value for s in self.states],
            "records_updated": self.records_updated,
            "records_created": self.records_created,
            "fanout_targets": self.fanout.targets if self.fanout else [],
            "fanout_failures": self.fanout.failures if self.fanout else {},
            "subscription": self.subscription.to_dict() if self.subscription else None,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


class SyncOrchestrator:
    """Drives the stores, registry, notifier and loop guard.

    Holds no mutable state between calls; concurrent units of work share
    only the registry.
    """

    def __init__(
        self,
        sheets: "SheetsAdapter",
        airtable: "AirtableAdapter",
        registry: "ConnectionRegistry",
        notifier: "ChangeNotifier",
        loop_guard: "LoopGuard",
        dispatcher: RefreshDispatcher | None = None,
        config: SyncConfig | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            sheets: Adapter for the document store.
            airtable: Adapter for the external table store.
            registry: Connection registry.
            notifier: Change notifier for watch channels.
            loop_guard: Detector for self-originated edits.
            dispatcher: How sibling refreshes are delivered. Defaults to
                running them in process.
            config: Sync section of the configuration.
        """
        self.sheets = sheets
        self.airtable = airtable
        self.registry = registry
        self.notifier = notifier
        self.loop_guard = loop_guard
        self.dispatcher = dispatcher or LocalRefreshDispatcher(self.refresh)
        self.config = config or SyncConfig()

    @staticmethod
    def _enter(trail: list[SyncState], state: SyncState, document_id: str) -> None:
        logger.debug(f"[{document_id}] {trail[-1].value} -> {state.value}")
        trail.append(state)

    async def connect(self, connection: Connection, callback_address: str) -> SyncResult:
        """Register a sheet, fill it from Airtable and start watching it.

        The connection is saved first; if a later step fails it stays saved,
        and connecting again overwrites it.
        """
        document_id = connection.document_id
        trail = [SyncState.IDLE]
        self._enter(trail, SyncState.CONNECTING, document_id)

        self.registry.save(connection)

        table = await self.airtable.fetch(connection)
        await self.sheets.replace(document_id, table)

        subscription = await self.notifier.subscribe(document_id, callback_address)
        self._enter(trail, SyncState.WATCHING, document_id)

        logger.info(
            f"Connected document {document_id} to table {connection.table_id} "
            f"({len(table.rows)} rows)"
        )
        return SyncResult(
            status=SyncStatus.SUCCESS,
            document_id=document_id,
            states=trail,
            subscription=subscription,
        )

    async def handle_notification(self, notification: "ChangeNotification") -> SyncResult:
        """Push a changed sheet into Airtable and refresh its siblings."""
        document_id = notification.document_id
        trail = [SyncState.WATCHING]

        if notification.is_handshake:
            logger.debug(f"Channel handshake for {document_id}; nothing to sync")
            self._enter(trail, SyncState.IDLE, document_id)
            return SyncResult(status=SyncStatus.SKIPPED, document_id=document_id, states=trail)

        # Only the channel this process tracks is processed
        if not self.notifier.is_current(notification):
            logger.info(
                f"Dropping notification for {document_id} from superseded "
                f"channel {notification.channel_id}"
            )
            await self.notifier.retire(notification)
            self._enter(trail, SyncState.IDLE, document_id)
            return SyncResult(status=SyncStatus.SKIPPED, document_id=document_id, states=trail)

        self._enter(trail, SyncState.PROCESSING_NOTIFICATION, document_id)

        if await self.loop_guard.is_self_originated(document_id):
            self._enter(trail, SyncState.IDLE, document_id)
            return SyncResult(status=SyncStatus.SKIPPED, document_id=document_id, states=trail)

        connection = self.registry.get(document_id)
        table = await self.sheets.fetch(document_id)
        pushed = await self.airtable.push(connection, table)

        self._enter(trail, SyncState.PROPAGATING, document_id)
        report = await self.propagate(connection.table_id, origin=document_id)
        self._enter(trail, SyncState.IDLE, document_id)

        status = SyncStatus.PARTIAL if report.failures else SyncStatus.SUCCESS
        logger.info(
            f"Synced document {document_id} into table {connection.table_id}: "
            f"{pushed.updated} updated, {pushed.created} created, "
            f"fan-out {len(report.succeeded)}/{len(report.targets)}"
        )
        return SyncResult(
            status=status,
            document_id=document_id,
            states=trail,
            records_updated=pushed.updated,
            records_created=pushed.created,
            fanout=report,
        )

    async def propagate(self, table_id: str, origin: str | None = None) -> FanOutReport:
        """Refresh every document mirroring ``table_id`` concurrently.

        All refreshes are awaited before returning. One sibling's failure is
        recorded and does not stop the others.
        """
        siblings = self.registry.find_siblings(table_id)
        if not self.config.fanout_include_origin and origin is not None:
            siblings = [s for s in siblings if s.document_id != origin]

        report = FanOutReport(targets=[s.document_id for s in siblings])
        if not siblings:
            return report

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_fanout))

        async def refresh_one(sibling: Connection) -> None:
            async with semaphore:
                await self.dispatcher.dispatch(sibling)

        outcomes = await asyncio.gather(
            *(refresh_one(s) for s in siblings),
            return_exceptions=True,
        )

        for sibling, outcome in zip(siblings, outcomes):
            if isinstance(outcome, BaseException):
                report.failures[sibling.document_id] = str(outcome) or outcome.__class__.__name__
                logger.warning(f"Refresh of sibling {sibling.document_id} failed: {outcome}")

        return report

    async def refresh(self, connection: Connection) -> SyncResult:
        """Overwrite a sheet with Airtable's current content.

        Skips the loop guard: this is the path sibling fan-out and manual
        resyncs take.
        """
        document_id = connection.document_id
        trail = [SyncState.IDLE]
        self._enter(trail, SyncState.PROPAGATING, document_id)

        table = await self.airtable.fetch(connection)
        await self.sheets.replace(document_id, table)

        self._enter(trail, SyncState.IDLE, document_id)
        logger.info(f"Refreshed document {document_id} from table {connection.table_id}")
        return SyncResult(status=SyncStatus.SUCCESS, document_id=document_id, states=trail)
