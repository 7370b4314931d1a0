"""sheetmirror - keeps Google Sheets mirrored with Airtable tables."""

__version__ = "0.1.0"
