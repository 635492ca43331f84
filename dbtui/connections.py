"""Cancellable, timed connection establishment polled from the UI loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from . import adapters
from .adapters import ConnectionHandle
from .models import ConnectionDescriptor

LOG = logging.getLogger(__name__)

CONNECT_TIMEOUT = 120.0
POLL_INTERVAL = 0.25

Connector = Callable[[ConnectionDescriptor], Awaitable[ConnectionHandle]]


class ConnectionBackendError(RuntimeError):
    """Base class for terminal connection outcomes other than success."""


class ConnectionFailedError(ConnectionBackendError):
    """The engine rejected the connection attempt."""


class ConnectionTimeoutError(ConnectionBackendError):
    """The connection attempt did not finish within the deadline."""


class ConnectionCancelledError(ConnectionBackendError):
    """The user abandoned the connection attempt."""


class LifecycleState(str, Enum):
    """States of the connection lifecycle state machine."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PendingConnection:
    """The single in-flight connection attempt."""

    descriptor: ConnectionDescriptor
    cancel_event: asyncio.Event
    task: asyncio.Task[ConnectionHandle]


class ConnectionLifecycleManager:
    """Owns at most one background connection attempt and the resulting handle.

    ``start`` must be called from a running event loop; ``poll`` never blocks
    and is meant to be driven from a fixed UI tick (see ``POLL_INTERVAL``).
    """

    def __init__(
        self,
        connector: Connector | None = None,
        *,
        timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        self._connector = connector or adapters.connect
        self._timeout = timeout
        self._pending: PendingConnection | None = None
        self._state = LifecycleState.IDLE
        self._handle: ConnectionHandle | None = None
        self._descriptor: ConnectionDescriptor | None = None
        self._message: str | None = None
        self._error: ConnectionBackendError | None = None
        self._closing: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def handle(self) -> ConnectionHandle | None:
        """Handle installed by the last successful attempt."""

        return self._handle

    @property
    def descriptor(self) -> ConnectionDescriptor | None:
        """Descriptor of the current (or last) attempt."""

        return self._descriptor

    @property
    def message(self) -> str | None:
        return self._message

    @property
    def error(self) -> ConnectionBackendError | None:
        return self._error

    @property
    def is_connecting(self) -> bool:
        return self._pending is not None

    def start(self, descriptor: ConnectionDescriptor) -> None:
        """Launch a background connection attempt, cancelling any previous one."""

        if self._pending is not None:
            self.cancel()
        loop = asyncio.get_running_loop()
        cancel_event = asyncio.Event()
        task = loop.create_task(
            self._establish(descriptor, cancel_event),
            name=f"dbtui-connect-{descriptor.name}",
        )
        self._pending = PendingConnection(descriptor=descriptor, cancel_event=cancel_event, task=task)
        self._descriptor = descriptor
        self._state = LifecycleState.CONNECTING
        self._message = f"Connecting to {descriptor.name}..."
        self._error = None
        LOG.info("Connection attempt started", extra={"connection": descriptor.name, "engine": descriptor.kind.value})

    def poll(self) -> LifecycleState:
        """Consume the outcome of a finished attempt exactly once."""

        pending = self._pending
        if pending is None or not pending.task.done():
            return self._state
        self._pending = None
        task = pending.task
        if task.cancelled():
            self._finish(LifecycleState.CANCELLED, ConnectionCancelledError("Connection cancelled"))
            return self._state
        exc = task.exception()
        if exc is None:
            self._install(pending.descriptor, task.result())
        elif isinstance(exc, ConnectionCancelledError):
            self._finish(LifecycleState.CANCELLED, exc)
        elif isinstance(exc, ConnectionBackendError):
            self._finish(LifecycleState.FAILED, exc)
        else:
            self._finish(LifecycleState.FAILED, ConnectionFailedError(f"Connection failed: {exc}"))
        return self._state

    def cancel(self) -> None:
        """Signal and abort the in-flight attempt; no-op when idle."""

        pending = self._pending
        if pending is None:
            return
        self._pending = None
        pending.cancel_event.set()
        if pending.task.done():
            self._discard_outcome(pending.task)
        else:
            pending.task.cancel()
        self._finish(LifecycleState.CANCELLED, ConnectionCancelledError("Connection cancelled"))

    async def disconnect(self) -> None:
        """Abandon any attempt and close the installed handle."""

        self.cancel()
        handle = self._handle
        self._handle = None
        if handle is not None:
            await _close_quietly(handle)
        self._state = LifecycleState.IDLE
        self._message = "Disconnected"
        self._error = None

    async def _establish(self, descriptor: ConnectionDescriptor, cancel_event: asyncio.Event) -> ConnectionHandle:
        connect_task = asyncio.ensure_future(self._connector(descriptor))
        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        claimed = False
        try:
            done, _ = await asyncio.wait(
                {connect_task, cancel_wait},
                timeout=self._timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if cancel_event.is_set():
                raise ConnectionCancelledError("Connection cancelled")
            if connect_task not in done:
                raise ConnectionTimeoutError(f"Connection timed out after {self._timeout:g}s")
            exc = connect_task.exception()
            if exc is not None:
                raise ConnectionFailedError(f"Connection failed: {exc}") from exc
            claimed = True
            return connect_task.result()
        finally:
            cancel_wait.cancel()
            if not claimed:
                self._abandon(connect_task)

    def _abandon(self, connect_task: asyncio.Future[ConnectionHandle]) -> None:
        if connect_task.done():
            self._discard_outcome(connect_task)
            return
        connect_task.cancel()
        # The driver may finish before the cancellation lands.
        connect_task.add_done_callback(self._discard_outcome)

    def _discard_outcome(self, task: asyncio.Future[ConnectionHandle]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOG.debug("Discarded connection attempt failed", extra={"error": str(exc)})
            return
        self._schedule_close(task.result())

    def _install(self, descriptor: ConnectionDescriptor, handle: ConnectionHandle) -> None:
        previous = self._handle
        self._handle = handle
        if previous is not None and previous is not handle:
            self._schedule_close(previous)
        self._state = LifecycleState.CONNECTED
        self._message = f"Connected to {descriptor.name}"
        self._error = None
        LOG.info("Connection established", extra={"connection": descriptor.name})

    def _finish(self, state: LifecycleState, error: ConnectionBackendError) -> None:
        self._state = state
        self._message = str(error)
        self._error = error
        if state is LifecycleState.FAILED:
            LOG.warning("Connection attempt failed", extra={"error": str(error)})

    def _schedule_close(self, handle: ConnectionHandle) -> None:
        task = asyncio.get_running_loop().create_task(_close_quietly(handle))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)


async def _close_quietly(handle: ConnectionHandle) -> None:
    try:
        await handle.close()
    except Exception:
        LOG.exception("Failed to close connection handle", extra={"connection": handle.descriptor.name})


__all__ = [
    "CONNECT_TIMEOUT",
    "POLL_INTERVAL",
    "ConnectionBackendError",
    "ConnectionCancelledError",
    "ConnectionFailedError",
    "ConnectionLifecycleManager",
    "ConnectionTimeoutError",
    "Connector",
    "LifecycleState",
    "PendingConnection",
]
