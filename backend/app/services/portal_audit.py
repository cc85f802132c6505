"""Background writer for portal access audit rows.

Portal routes hand audit entries to an AccessLogWriter instead of writing
them inline. A single asyncio task drains the queue and writes each entry
with its own database session, so:

- the customer's response never waits on, or fails because of, an audit write
- a failed write is logged and dropped; it never reaches the request
- a full queue drops the new entry with a warning instead of blocking

The worker starts lazily on the first submit() and is drained by stop()
from the application lifespan.
"""

import asyncio
import contextlib
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.repositories.access_log_repository import AccessLogRepository
from app.repositories.portal_token_repository import PortalTokenRepository

logger = structlog.get_logger()

# Seconds stop() waits for queued entries before cancelling the worker
_DEFAULT_DRAIN_TIMEOUT = 5.0


@dataclass(frozen=True)
class AccessLogEntry:
    """One audit record awaiting persistence.

    Attributes:
        token_id: Token presented by the client.
        action: Attempted operation (e.g. "pdf_download").
        outcome: Guard verdict value (e.g. "valid", "expired").
        ip_address: Client IP.
        user_agent: Client User-Agent header.
        accessed_at: When the request was handled.
        record_access: Also bump the token's access telemetry.
    """

    token_id: uuid.UUID
    action: str
    outcome: str
    ip_address: str | None
    user_agent: str | None
    accessed_at: datetime
    record_access: bool = False


AccessLogSink = Callable[[AccessLogEntry], Awaitable[None]]


def database_sink(
    session_factory: async_sessionmaker[AsyncSession],
) -> AccessLogSink:
    """Build a sink that persists entries in their own transaction.

    Args:
        session_factory: Factory for short-lived sessions.

    Returns:
        Async callable writing one entry per call.
    """

    async def write(entry: AccessLogEntry) -> None:
        async with session_factory() as session:
            await AccessLogRepository.create(
                session,
                token_id=entry.token_id,
                action=entry.action,
                outcome=entry.outcome,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                accessed_at=entry.accessed_at,
            )
            if entry.record_access:
                await PortalTokenRepository.record_access(
                    session, entry.token_id, accessed_at=entry.accessed_at
                )
            await session.commit()

    return write


class AccessLogWriter:
    """Queue-backed, fire-and-forget audit writer."""

    def __init__(self, sink: AccessLogSink, *, maxsize: int = 1000) -> None:
        """Initialize the writer.

        Args:
            sink: Coroutine function that persists a single entry.
            maxsize: Queue capacity; entries beyond it are dropped.
        """
        self._sink = sink
        self._maxsize = maxsize
        self._queue: asyncio.Queue[AccessLogEntry] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def running(self) -> bool:
        """True while the worker task is alive."""
        return self._worker is not None and not self._worker.done()

    def submit(self, entry: AccessLogEntry) -> bool:
        """Queue an entry without waiting for it to be written.

        Must be called from inside a running event loop.

        Args:
            entry: Audit record to persist.

        Returns:
            True if queued, False if dropped because the queue is full.
        """
        queue = self._ensure_started()
        try:
            queue.put_nowait(entry)
        except asyncio.QueueFull:
            logger.warning(
                "portal_access_log_dropped",
                reason="queue_full",
                token_id=str(entry.token_id),
                action=entry.action,
            )
            return False
        return True

    async def drain(self) -> None:
        """Wait until every queued entry has been handled."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def stop(self, timeout: float = _DEFAULT_DRAIN_TIMEOUT) -> None:
        """Drain outstanding entries, then stop the worker.

        Args:
            timeout: Seconds to wait for the queue to drain.
        """
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except TimeoutError:
            pending = self._queue.qsize() if self._queue is not None else 0
            logger.warning("portal_access_log_drain_timeout", pending=pending)
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        self._queue = None
        self._loop = None

    def _ensure_started(self) -> asyncio.Queue[AccessLogEntry]:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            # Queues and tasks are bound to the loop that created them
            self._queue = asyncio.Queue(maxsize=self._maxsize)
            self._worker = None
            self._loop = loop
        if not self.running:
            self._worker = loop.create_task(
                self._run(self._queue), name="portal-access-log-writer"
            )
        return self._queue

    async def _run(self, queue: asyncio.Queue[AccessLogEntry]) -> None:
        while True:
            entry = await queue.get()
            try:
                await self._sink(entry)
            except Exception:
                logger.warning(
                    "portal_access_log_write_failed",
                    token_id=str(entry.token_id),
                    action=entry.action,
                    exc_info=True,
                )
            finally:
                queue.task_done()


# Singleton instance for the application
_writer: AccessLogWriter | None = None


def get_access_log_writer() -> AccessLogWriter:
    """Get the process-wide audit writer (FastAPI dependency).

    Returns:
        The AccessLogWriter singleton, writing through the app database.
    """
    global _writer
    if _writer is None:
        from app.core.config import settings
        from app.core.database import async_session_factory

        _writer = AccessLogWriter(
            database_sink(async_session_factory),
            maxsize=settings.portal_audit_queue_size,
        )
    return _writer


def reset_access_log_writer() -> None:
    """Drop the singleton without draining it (for testing)."""
    global _writer
    _writer = None


async def shutdown_access_log_writer() -> None:
    """Drain and stop the singleton writer, if it was ever created."""
    global _writer
    if _writer is not None:
        await _writer.stop()
    _writer = None
