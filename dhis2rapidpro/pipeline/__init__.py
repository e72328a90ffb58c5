"""Synchronization pipeline boundary.

This module contains:
- SyncPipeline: protocol implemented by the synchronization pipeline
- LoggingSyncPipeline: stand-in used when no pipeline is attached
- read_last_run_at: formatting of the last successful run timestamp
"""

from dhis2rapidpro.pipeline.expressions import format_timestamp, read_last_run_at
from dhis2rapidpro.pipeline.ports import LoggingSyncPipeline, SyncOperation, SyncPipeline

__all__ = [
    "LoggingSyncPipeline",
    "SyncOperation",
    "SyncPipeline",
    "format_timestamp",
    "read_last_run_at",
]
