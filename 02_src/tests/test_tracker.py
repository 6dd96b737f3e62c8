"""Tests for Tracker."""

import logging
from datetime import datetime, timezone

import pytest

from economy.models import LogType


class TestTrackerTrack:
    """Tests for Tracker.track() method."""

    async def test_track_creates_entry(self, tracker, storage):
        """Test that track() saves a TransactionLogEntry."""
        await tracker.track("buyer", LogType.SENT, "hello", {"key": "value"})

        logs = await storage.get_logs()
        assert len(logs) == 1
        assert logs[0].agent_id == "buyer"
        assert logs[0].type == LogType.SENT
        assert logs[0].message == "hello"
        assert logs[0].data == {"key": "value"}

    async def test_track_returns_entry(self, tracker):
        entry = await tracker.track("buyer", "message", "hello")
        assert entry.id
        assert entry.type == LogType.MESSAGE
        assert entry.data is None

    async def test_track_generates_timestamp(self, tracker, storage):
        before = datetime.now(timezone.utc)
        await tracker.track("buyer", LogType.MESSAGE, "hello")
        after = datetime.now(timezone.utc)

        logs = await storage.get_logs()
        assert before <= logs[0].timestamp <= after

    async def test_track_rejects_unknown_type(self, tracker):
        with pytest.raises(ValueError):
            await tracker.track("buyer", "shouted", "hello")

    async def test_track_mirrors_to_logging(self, tracker, caplog):
        with caplog.at_level(logging.INFO, logger="economy.tracker.tracker"):
            await tracker.track("buyer", LogType.RECEIVED, "quote in")

        assert any("quote in" in r.getMessage() for r in caplog.records)
        assert caplog.records[-1].agent_id == "buyer"


class TestTrackerHelpers:
    """Tests for the typed shortcuts."""

    async def test_helpers_set_type(self, tracker, storage):
        await tracker.sent("a", "one")
        await tracker.received("a", "two")
        await tracker.message("a", "three")

        logs = await storage.get_logs("a")
        assert [log.type for log in logs] == [LogType.SENT, LogType.RECEIVED, LogType.MESSAGE]

    async def test_warning_logs_at_warning_level(self, tracker, storage, caplog):
        with caplog.at_level(logging.INFO, logger="economy.tracker.tracker"):
            await tracker.warning("a", "something off")

        assert caplog.records[-1].levelno == logging.WARNING
        logs = await storage.get_logs("a")
        assert logs[0].type == LogType.MESSAGE
