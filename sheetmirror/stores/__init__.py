"""Table stores on both sides of the mirror.

- Google Sheets (the document store) via the Sheets v4 values API
- Google Drive for revision history and change-watch channels
- Airtable (the external table store) via its REST API
"""

from .base import TableAdapter
from .google_auth import GoogleTokenProvider
from .drive import DriveClient
from .sheets import SheetsAdapter
from .airtable import AirtableAdapter, PushResult

__all__ = [
    "TableAdapter",
    "GoogleTokenProvider",
    "DriveClient",
    "SheetsAdapter",
    "AirtableAdapter",
    "PushResult",
]
