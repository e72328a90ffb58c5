"""Tests for the pipeline boundary."""

import pytest

from dhis2rapidpro.pipeline import LoggingSyncPipeline, SyncOperation


class TestLoggingSyncPipeline:
    """Tests for LoggingSyncPipeline."""

    @pytest.mark.asyncio
    async def test_records_triggers(self):
        """Test that triggered operations are recorded in order."""
        pipeline = LoggingSyncPipeline()

        await pipeline.trigger(SyncOperation.SYNC)
        await pipeline.trigger(SyncOperation.REMINDERS)

        assert pipeline.triggered == [SyncOperation.SYNC, SyncOperation.REMINDERS]

    @pytest.mark.asyncio
    async def test_records_webhook_messages(self):
        """Test that webhook payloads are recorded, with or without a flow."""
        pipeline = LoggingSyncPipeline()

        await pipeline.receive_webhook({"flow": {"uuid": "f1"}, "results": {}})
        await pipeline.receive_webhook({"contact": {"uuid": "c1"}})

        assert len(pipeline.received) == 2
        assert pipeline.received[0]["flow"]["uuid"] == "f1"
