"""Suppression of notifications caused by our own writes.

Every sheet write sheetmirror makes fires the sheet's watch channel again.
Without this check each propagated update would bounce between the sheet and
Airtable forever.
"""

import logging
from typing import Any

from ..errors import HistoryUnavailable, SheetMirrorError
from ..stores.drive import DriveClient

logger = logging.getLogger(__name__)


class LoopGuard:
    """Decides whether a document's latest edit was made by this service."""

    def __init__(self, drive: DriveClient, service_identity: str | None = None):
        """Initialize the loop guard.

        Args:
            drive: Drive client used to read revision history.
            service_identity: Email of the identity sheetmirror writes as.
                When unset, Drive's ``me`` flag on the revision author is used.
        """
        self._drive = drive
        self._identity = service_identity.lower() if service_identity else None

    async def latest_revision(self, document_id: str) -> tuple[dict[str, Any] | None, int]:
        """Return the newest revision and the total revision count.

        Raises:
            HistoryUnavailable: The revision query failed.
        """
        latest = None
        count = 0
        try:
            async for page in self._drive.iter_revisions(document_id):
                if page:
                    latest = page[-1]
                    count += len(page)
        except SheetMirrorError as e:
            raise HistoryUnavailable(document_id, str(e)) from e

        return latest, count

    def _is_ours(self, revision: dict[str, Any]) -> bool:
        author = revision.get("lastModifyingUser") or {}
        if self._identity:
            email = (author.get("emailAddress") or "").lower()
            if email == self._identity:
                return True
        return bool(author.get("me"))

    async def is_self_originated(self, document_id: str) -> bool:
        """True iff the most recent edit was authored by this service.

        An empty or single-entry history is treated as a foreign edit.
        """
        latest, count = await self.latest_revision(document_id)
        if latest is None or count < 2:
            logger.debug(f"Document {document_id} has {count} revision(s); treating as foreign")
            return False

        ours = self._is_ours(latest)
        if ours:
            logger.info(f"Latest edit to {document_id} is our own; suppressing")
        return ours
