"""Audit trail for operations performed through the client.

An audit logger is anything with a ``log(event)`` method; it may be a plain
function or a coroutine. Failures inside audit loggers never reach the caller
of the API operation that produced the event.
"""

import asyncio
import contextlib
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol, Union

AuditOperation = Literal[
    "create", "read", "update", "delete", "search", "list", "upsert", "auth", "token_refresh"
]
ResourceType = Literal["contact", "opportunity", "user", "pipeline", "note", "auth_token"]


@dataclass
class AuditEvent:
    operation: AuditOperation
    resource_type: ResourceType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resource_id: str | None = None
    location_id: str | None = None
    actor: str | None = None
    success: bool = True
    error: str | None = None
    metadata: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AuditLogger(Protocol):
    def log(self, event: AuditEvent) -> Union[None, Awaitable[None]]: ...


class NoopAuditLogger:
    def log(self, event: AuditEvent) -> None:
        return None


class LoggingAuditLogger:
    """Write events to the ``ghl_client.audit`` logger. May contain PII."""

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger("ghl_client.audit")

    def log(self, event: AuditEvent) -> None:
        target = f" [{event.resource_id}]" if event.resource_id else ""
        outcome = "SUCCESS" if event.success else "FAIL"
        message = (
            f"[AUDIT] {event.timestamp.isoformat()} | {event.actor or 'unknown'} | "
            f"{event.operation.upper()} {event.resource_type}{target} | {outcome}"
        )
        if event.error:
            message += f" - {event.error}"
        if event.success:
            self._logger.info(message)
        else:
            self._logger.error(message)


class FileAuditLogger:
    """Append events as JSON lines to ``path``."""

    def __init__(self, path: str):
        self.path = path
        self._logger = logging.getLogger("ghl_client.audit")

    def log(self, event: AuditEvent) -> None:
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")
        except OSError as e:
            self._logger.error(f"failed to write audit log {self.path}: {e}")


class BufferAuditLogger:
    """Collect events in memory and hand them to ``on_flush`` in batches.

    A flush starts automatically once ``max_buffer_size`` events are queued,
    every ``flush_interval`` ms (None disables the timer), or when
    ``flush()``/``aclose()`` is awaited. Automatic flushes need a running
    event loop; the timer starts with the first ``log()`` made inside one.
    If ``on_flush`` raises, the batch is put back at the front of the buffer.
    """

    def __init__(
        self,
        on_flush: Callable[[list[AuditEvent]], Awaitable[None]],
        max_buffer_size: int = 100,
        flush_interval: float | None = 60000,
    ):
        self.on_flush = on_flush
        self.max_buffer_size = max_buffer_size
        self.flush_interval = flush_interval
        self._buffer: list[AuditEvent] = []
        # delivery in progress
        self._flush_task: asyncio.Task | None = None
        # flush scheduled by log() when the buffer filled up
        self._pending_flush: asyncio.Task | None = None
        self._timer_task: asyncio.Task | None = None
        self._logger = logging.getLogger("ghl_client.audit")

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    def log(self, event: AuditEvent) -> None:
        self._buffer.append(event)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self.flush_interval and self._timer_task is None:
            self._timer_task = loop.create_task(self._flush_periodically())
        if len(self._buffer) >= self.max_buffer_size and self._pending_flush is None:
            self._pending_flush = loop.create_task(self.flush())
            self._pending_flush.add_done_callback(self._clear_pending_flush)

    async def flush(self) -> None:
        """Wait for any delivery in progress, then deliver what is buffered."""
        while self._flush_task is not None:
            await asyncio.shield(self._flush_task)
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        task = asyncio.ensure_future(self._deliver(batch))
        self._flush_task = task
        task.add_done_callback(self._clear_flush_task)
        await asyncio.shield(task)

    async def aclose(self) -> None:
        timer, self._timer_task = self._timer_task, None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        await self.flush()

    async def _flush_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval / 1000)
            await self.flush()

    def _clear_pending_flush(self, task: asyncio.Task) -> None:
        if self._pending_flush is task:
            self._pending_flush = None

    def _clear_flush_task(self, task: asyncio.Task) -> None:
        if self._flush_task is task:
            self._flush_task = None

    async def _deliver(self, batch: list[AuditEvent]) -> None:
        try:
            result = self.on_flush(batch)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._logger.error(f"failed to flush {len(batch)} audit events: {e}")
            self._buffer[:0] = batch
