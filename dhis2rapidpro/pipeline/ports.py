"""Boundary between the HTTP layer and the synchronization pipeline.

The pipeline itself (extracting DHIS2 data, pushing RapidPro contacts,
scheduling) lives outside this package. Endpoints only talk to it through
SyncPipeline.
"""

from enum import Enum
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class SyncOperation(Enum):
    """Administrative operations triggered over HTTP."""

    SYNC = "sync"  # Synchronise DHIS2 users into RapidPro contacts
    SCAN = "scan"  # Scan RapidPro flow runs and report them to DHIS2
    REMINDERS = "reminders"  # Send due-date reminders


class SyncPipeline(Protocol):
    """Operations the HTTP layer delegates to the pipeline."""

    async def trigger(self, operation: SyncOperation) -> None:
        """Start an administrative operation."""
        ...

    async def receive_webhook(self, payload: dict[str, Any]) -> None:
        """Accept a RapidPro webhook message."""
        ...


class LoggingSyncPipeline:
    """Pipeline stand-in that records requests without acting on them."""

    def __init__(self) -> None:
        self._logger = logger.bind(component="logging_sync_pipeline")
        self.triggered: list[SyncOperation] = []
        self.received: list[dict[str, Any]] = []

    async def trigger(self, operation: SyncOperation) -> None:
        """Record an administrative operation."""
        self.triggered.append(operation)
        self._logger.info("sync_operation_triggered", operation=operation.value)

    async def receive_webhook(self, payload: dict[str, Any]) -> None:
        """Record a webhook message."""
        self.received.append(payload)
        flow = payload.get("flow")
        self._logger.info(
            "webhook_message_received",
            flow_uuid=flow.get("uuid") if isinstance(flow, dict) else None,
            keys=sorted(payload.keys()),
        )
