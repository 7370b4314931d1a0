"""Change notifications for mirrored documents.

Drive delivers changes to a web_hook channel that expires after roughly a
day. The notifier opens channels, renews them before expiry, and parses the
push headers Drive sends to the callback address.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Mapping

from .config import WatchConfig
from .errors import SheetMirrorError, UnresolvableNotification
from .models import Subscription
from .stores.drive import DriveClient

if TYPE_CHECKING:
    from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

# Resource state Drive sends once when a channel is created
HANDSHAKE_STATE = "sync"


@dataclass
class ChangeNotification:
    """A parsed Drive push notification."""

    document_id: str
    channel_id: str | None = None
    resource_state: str | None = None
    message_number: str | None = None
    resource_id: str | None = None

    @property
    def is_handshake(self) -> bool:
        return self.resource_state == HANDSHAKE_STATE


def document_id_from_uri(resource_uri: str) -> str:
    """Extract the file id from a Drive resource URI.

    Example:
        ``https://www.googleapis.com/drive/v3/files/<id>?alt=json`` -> ``<id>``
    """
    if "files/" not in resource_uri:
        raise UnresolvableNotification(f"No file id in resource URI: {resource_uri}")
    document_id = resource_uri.split("files/", 1)[1].split("?", 1)[0].strip("/")
    if not document_id:
        raise UnresolvableNotification(f"No file id in resource URI: {resource_uri}")
    return document_id


def parse_notification(headers: Mapping[str, str]) -> ChangeNotification:
    """Build a ChangeNotification from Drive's X-Goog-* push headers."""
    lowered = {k.lower(): v for k, v in headers.items()}
    resource_uri = lowered.get("x-goog-resource-uri")
    if not resource_uri:
        raise UnresolvableNotification("Missing X-Goog-Resource-URI header")

    return ChangeNotification(
        document_id=document_id_from_uri(resource_uri),
        channel_id=lowered.get("x-goog-channel-id"),
        resource_state=lowered.get("x-goog-resource-state"),
        message_number=lowered.get("x-goog-message-number"),
        resource_id=lowered.get("x-goog-resource-id"),
    )


class ChangeNotifier:
    """Opens and renews Drive watch channels for documents.

    Channels live in Drive. The notifier only remembers the last channel it
    opened per document in this process, so renewal can stop the channel it
    supersedes.
    """

    def __init__(self, drive: DriveClient, config: WatchConfig | None = None):
        self._drive = drive
        self._config = config or WatchConfig()
        self._channels: dict[str, Subscription] = {}

    async def subscribe(self, document_id: str, callback_address: str) -> Subscription:
        """Open a new watch channel for ``document_id``.

        Every call opens a new channel; use ``resubscribe`` to avoid piling
        them up.
        """
        expires_at = datetime.now() + timedelta(seconds=self._config.ttl_seconds)
        channel = await self._drive.watch_file(document_id, callback_address, expires_at)

        expiration = channel.get("expiration")
        if expiration:
            expires_at = datetime.fromtimestamp(int(expiration) / 1000)

        subscription = Subscription(
            document_id=document_id,
            channel_id=channel["id"],
            resource_id=channel.get("resourceId"),
            expires_at=expires_at,
            callback_address=callback_address,
        )
        self._channels[document_id] = subscription
        logger.info(
            f"Watching document {document_id} on channel {subscription.channel_id} "
            f"until {subscription.expires_at.isoformat()}"
        )
        return subscription

    async def resubscribe(self, document_id: str, callback_address: str) -> Subscription:
        """Ensure a live channel exists for ``document_id``.

        Safe to call repeatedly: a channel that is not yet due for renewal is
        returned unchanged. Otherwise a new channel is opened and the old one
        is stopped.
        """
        current = self._channels.get(document_id)
        if (
            current is not None
            and current.callback_address == callback_address
            and not current.needs_renewal(self._config.renew_margin_seconds)
        ):
            logger.debug(f"Channel for {document_id} still fresh, keeping it")
            return current

        subscription = await self.subscribe(document_id, callback_address)

        if current is not None and current.resource_id:
            try:
                await self._drive.stop_channel(current.channel_id, current.resource_id)
                logger.debug(f"Stopped superseded channel {current.channel_id}")
            except SheetMirrorError as e:
                # The old channel expires on its own; a failed stop only delays that
                logger.warning(f"Could not stop channel {current.channel_id}: {e}")

        return subscription

    def get_subscription(self, document_id: str) -> Subscription | None:
        return self._channels.get(document_id)

    def is_current(self, notification: ChangeNotification) -> bool:
        """True unless the notification came through a superseded channel.

        Until this process tracks a channel for the document, every channel
        is accepted.
        """
        tracked = self._channels.get(notification.document_id)
        if tracked is None or notification.channel_id is None:
            return True
        return notification.channel_id == tracked.channel_id

    async def retire(self, notification: ChangeNotification) -> None:
        """Stop the stale channel a notification arrived on."""
        if not notification.channel_id or not notification.resource_id:
            return
        try:
            await self._drive.stop_channel(notification.channel_id, notification.resource_id)
            logger.info(
                f"Stopped stale channel {notification.channel_id} "
                f"for {notification.document_id}"
            )
        except SheetMirrorError as e:
            logger.warning(f"Could not stop channel {notification.channel_id}: {e}")


class RenewalLoop:
    """Background task that keeps every registered document's channel alive."""

    def __init__(
        self,
        notifier: ChangeNotifier,
        registry: "ConnectionRegistry",
        callback_address: str,
        interval_minutes: int = 60,
    ):
        """Initialize the renewal loop.

        Args:
            notifier: Notifier used to renew channels.
            registry: Source of connected documents.
            callback_address: Notification endpoint channels deliver to.
            interval_minutes: How often to check channels.
        """
        self._notifier = notifier
        self._registry = registry
        self._callback_address = callback_address
        self._interval = interval_minutes * 60  # Convert to seconds
        self._task: asyncio.Task | None = None
        self._running = False

    async def start(self) -> None:
        """Start the renewal loop as a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Renewal loop started (interval={self._interval // 60}min)")

    async def stop(self) -> None:
        """Stop the renewal loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Renewal loop stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Channel renewal failed: {e}", exc_info=True)

            await asyncio.sleep(self._interval)

    async def run_once(self) -> dict[str, int]:
        """Renew channels for all registered documents.

        Returns:
            Counts of documents renewed and failed.
        """
        renewed = 0
        failed = 0
        for connection in self._registry.list_all():
            try:
                await self._notifier.resubscribe(
                    connection.document_id, self._callback_address
                )
                renewed += 1
            except SheetMirrorError as e:
                failed += 1
                logger.warning(
                    f"Could not renew channel for {connection.document_id}: {e}"
                )

        logger.debug(f"Channel renewal pass: renewed={renewed}, failed={failed}")
        return {"renewed": renewed, "failed": failed}
