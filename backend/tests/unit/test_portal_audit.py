"""Tests for the background portal audit writer.

The writer must never block or fail the request that submitted an entry:
sink failures are logged and dropped, and a full queue drops new entries.
"""

import asyncio
import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

from app.services import portal_audit
from app.services.portal_audit import (
    AccessLogEntry,
    AccessLogWriter,
    database_sink,
    get_access_log_writer,
    reset_access_log_writer,
    shutdown_access_log_writer,
)


def _entry(action: str = "quote_viewed", *, record_access: bool = False):
    return AccessLogEntry(
        token_id=uuid.uuid4(),
        action=action,
        outcome="valid" if record_access else "expired",
        ip_address="203.0.113.1",
        user_agent="pytest",
        accessed_at=datetime(2026, 3, 1, tzinfo=UTC),
        record_access=record_access,
    )


class TestAccessLogWriter:
    """Queueing, draining and failure isolation."""

    async def test_submitted_entries_are_written_in_order(self) -> None:
        written: list[AccessLogEntry] = []

        async def sink(entry: AccessLogEntry) -> None:
            written.append(entry)

        writer = AccessLogWriter(sink)
        entries = [_entry("validate"), _entry("quote_viewed"), _entry("pdf_download")]
        for entry in entries:
            assert writer.submit(entry)

        await writer.drain()
        assert written == entries
        await writer.stop()

    async def test_submit_does_not_wait_for_sink(self) -> None:
        release = asyncio.Event()
        written: list[AccessLogEntry] = []

        async def slow_sink(entry: AccessLogEntry) -> None:
            await release.wait()
            written.append(entry)

        writer = AccessLogWriter(slow_sink)
        writer.submit(_entry())
        assert written == []

        release.set()
        await writer.drain()
        assert len(written) == 1
        await writer.stop()

    async def test_sink_failure_is_logged_and_worker_continues(self) -> None:
        written: list[AccessLogEntry] = []
        failing = _entry("validate")

        async def sink(entry: AccessLogEntry) -> None:
            if entry is failing:
                raise RuntimeError("db down")
            written.append(entry)

        writer = AccessLogWriter(sink)
        ok = _entry("quote_viewed")
        with patch.object(portal_audit, "logger") as mock_logger:
            writer.submit(failing)
            writer.submit(ok)
            await writer.drain()

        assert written == [ok]
        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.args[0] == "portal_access_log_write_failed"
        assert writer.running
        await writer.stop()

    async def test_full_queue_drops_entry_with_warning(self) -> None:
        release = asyncio.Event()

        async def blocked_sink(_entry: AccessLogEntry) -> None:
            await release.wait()

        writer = AccessLogWriter(blocked_sink, maxsize=1)
        with patch.object(portal_audit, "logger") as mock_logger:
            assert writer.submit(_entry())
            # Let the worker take the first entry off the queue
            await asyncio.sleep(0)
            assert writer.submit(_entry())
            assert not writer.submit(_entry("dropped"))

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["action"] == "dropped"

        release.set()
        await writer.stop()

    async def test_stop_drains_pending_entries(self) -> None:
        written: list[AccessLogEntry] = []

        async def sink(entry: AccessLogEntry) -> None:
            await asyncio.sleep(0)
            written.append(entry)

        writer = AccessLogWriter(sink)
        for _ in range(5):
            writer.submit(_entry())

        await writer.stop()

        assert len(written) == 5
        assert not writer.running

    async def test_stop_times_out_on_stuck_sink(self) -> None:
        async def stuck_sink(_entry: AccessLogEntry) -> None:
            await asyncio.Event().wait()

        writer = AccessLogWriter(stuck_sink)
        writer.submit(_entry())

        with patch.object(portal_audit, "logger") as mock_logger:
            await writer.stop(timeout=0.01)

        assert mock_logger.warning.call_args.args[0] == (
            "portal_access_log_drain_timeout"
        )
        assert not writer.running

    async def test_stop_without_submissions_is_noop(self) -> None:
        writer = AccessLogWriter(AsyncMock())
        await writer.stop()
        assert not writer.running

    async def test_restarts_after_stop(self) -> None:
        sink = AsyncMock()
        writer = AccessLogWriter(sink)
        writer.submit(_entry())
        await writer.stop()

        writer.submit(_entry())
        await writer.drain()

        assert sink.await_count == 2
        await writer.stop()


class TestDatabaseSink:
    """database_sink() writes each entry in its own transaction."""

    def _factory(self, session: MagicMock) -> MagicMock:
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=session)
        context.__aexit__ = AsyncMock(return_value=False)
        return MagicMock(return_value=context)

    async def test_writes_log_row_and_commits(self) -> None:
        session = MagicMock()
        session.commit = AsyncMock()
        entry = _entry()

        with (
            patch(
                "app.services.portal_audit.AccessLogRepository.create",
                new_callable=AsyncMock,
            ) as mock_create,
            patch(
                "app.services.portal_audit.PortalTokenRepository.record_access",
                new_callable=AsyncMock,
            ) as mock_record,
        ):
            await database_sink(self._factory(session))(entry)

        mock_create.assert_awaited_once()
        assert mock_create.call_args.kwargs["action"] == entry.action
        assert mock_create.call_args.kwargs["outcome"] == entry.outcome
        mock_record.assert_not_awaited()
        session.commit.assert_awaited_once()

    async def test_valid_entry_bumps_access_telemetry(self) -> None:
        session = MagicMock()
        session.commit = AsyncMock()
        entry = _entry(record_access=True)

        with (
            patch(
                "app.services.portal_audit.AccessLogRepository.create",
                new_callable=AsyncMock,
            ),
            patch(
                "app.services.portal_audit.PortalTokenRepository.record_access",
                new_callable=AsyncMock,
            ) as mock_record,
        ):
            await database_sink(self._factory(session))(entry)

        mock_record.assert_awaited_once_with(
            session, entry.token_id, accessed_at=entry.accessed_at
        )


class TestWriterSingleton:
    """get_access_log_writer() / reset / shutdown."""

    def test_returns_same_instance(self) -> None:
        assert get_access_log_writer() is get_access_log_writer()

    def test_reset_creates_fresh_instance(self) -> None:
        first = get_access_log_writer()
        reset_access_log_writer()
        assert get_access_log_writer() is not first

    async def test_shutdown_stops_and_clears(self) -> None:
        first = get_access_log_writer()
        await shutdown_access_log_writer()
        assert get_access_log_writer() is not first
