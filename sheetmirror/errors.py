"""Error taxonomy for sheetmirror.

Every failure raised by the sync path derives from SheetMirrorError so the
inbound surface can report it at the unit-of-work boundary. Nothing in this
package retries internally; retrying is the caller's decision.
"""


class SheetMirrorError(Exception):
    """Base class for all sheetmirror failures."""


class AdapterUnavailable(SheetMirrorError):
    """A backing store was unreachable or rejected the request.

    Covers auth failures, missing tables, rate limits, server errors and
    timeouts. Retryable by the caller.
    """

    def __init__(self, store: str, message: str, status_code: int | None = None):
        self.store = store
        self.status_code = status_code
        detail = f"{store}: {message}"
        if status_code is not None:
            detail = f"{store}: HTTP {status_code}: {message}"
        super().__init__(detail)


class MalformedTable(SheetMirrorError):
    """Rows of a table do not line up with its header."""


class InconsistentSchema(SheetMirrorError):
    """Records cannot be rendered under a single header."""


class HistoryUnavailable(SheetMirrorError):
    """The revision history of a document could not be read."""

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        super().__init__(f"Revision history unavailable for {document_id}: {reason}")


class RegistryLookupMiss(SheetMirrorError):
    """No connection is registered for a document."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"No connection registered for document {document_id}")


class UnresolvableNotification(SheetMirrorError):
    """A change notification does not name a document."""
