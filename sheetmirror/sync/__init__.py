"""Synchronization engine for mirrored tables.

Reconciles grid and record forms, suppresses feedback loops caused by our
own writes, and fans Airtable changes out to every mirroring sheet.
"""

from .reconciler import BATCH_SIZE, Partition, chunk, partition, to_records, to_table
from .loop_guard import LoopGuard
from .fanout import HttpRefreshDispatcher, LocalRefreshDispatcher, RefreshDispatcher
from .orchestrator import FanOutReport, SyncOrchestrator, SyncResult, SyncState, SyncStatus

__all__ = [
    "BATCH_SIZE",
    "Partition",
    "chunk",
    "partition",
    "to_records",
    "to_table",
    "LoopGuard",
    "RefreshDispatcher",
    "HttpRefreshDispatcher",
    "LocalRefreshDispatcher",
    "FanOutReport",
    "SyncOrchestrator",
    "SyncResult",
    "SyncState",
    "SyncStatus",
]
