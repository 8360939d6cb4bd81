"""Connection lifecycle: state machine, exponential backoff and attempt limits."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pardalote.core.errors import TransportConnectError, UsageError
from pardalote.core.model import ConnectionState, ConnectionStatus
from pardalote.core.timers import CancellableTimer, Scheduler
from pardalote.transports.base import Transport

LOGGER = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay_ms: float, max_delay_ms: float, factor: float = 1.5) -> float:
    """Delay before reconnect attempt ``attempt`` (1-indexed)."""
    return min(base_delay_ms * factor ** (attempt - 1), max_delay_ms)


class ReconnectionManager:
    """Owns the transport's lifecycle and is its listener.

    Connection failures never raise into caller code; they only move the
    state machine and are visible through :meth:`status`.
    """

    def __init__(
        self,
        transport: Transport,
        scheduler: Scheduler,
        *,
        max_attempts: int = 10,
        base_delay_ms: float = 1000,
        max_delay_ms: float = 30000,
        backoff_factor: float = 1.5,
    ) -> None:
        self._transport = transport
        self._timer = CancellableTimer(scheduler)
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.backoff_factor = backoff_factor
        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._endpoint: str | None = None
        self._manual_close = False
        self.on_connected: Callable[[], None] | None = None
        self.on_frame: Callable[[str | bytes], None] | None = None
        transport.bind(self)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def reconnect_pending(self) -> bool:
        return self._timer.pending

    def status(self, pending_messages: int = 0) -> ConnectionStatus:
        return ConnectionStatus(
            state=self._state,
            reconnect_attempts=self._attempts,
            max_reconnect_attempts=self.max_attempts,
            endpoint=self._endpoint,
            pending_messages=pending_messages,
        )

    def next_delay(self) -> float:
        return backoff_delay(self._attempts + 1, self.base_delay_ms, self.max_delay_ms, self.backoff_factor)

    # ---- manual control ----
    def connect(self, endpoint: str) -> None:
        self._endpoint = endpoint
        self._attempts = 0
        self._timer.cancel()
        self._open_now(endpoint)

    def reconnect(self) -> None:
        if self._endpoint is None:
            raise UsageError("reconnect() called before connect(); no endpoint known")
        self._timer.cancel()
        self._attempts = 0
        self._open_now(self._endpoint)

    def disconnect(self) -> None:
        self._attempts = self.max_attempts
        self._timer.cancel()
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self._manual_close = True
            self._transport.close()
        self._state = ConnectionState.DISCONNECTED
        LOGGER.info("Manually disconnected - auto-reconnection disabled")

    def _open_now(self, endpoint: str) -> None:
        self._manual_close = False
        self._state = ConnectionState.CONNECTING
        LOGGER.info("Attempting to connect to %s...", endpoint)
        try:
            self._transport.open(endpoint)
        except TransportConnectError as exc:
            # The attempt never started, so no on_close will follow.
            self._state = ConnectionState.DISCONNECTED
            LOGGER.error("Could not start connection to %s: %s", endpoint, exc)

    # ---- transport callbacks ----
    def on_open(self) -> None:
        self._state = ConnectionState.CONNECTED
        self._attempts = 0
        self._timer.cancel()
        LOGGER.info("Connected to %s", self._endpoint)
        if self.on_connected is not None:
            self.on_connected()

    def on_close(self, code: int, reason: str) -> None:
        LOGGER.info("Connection closed. Code: %s, Reason: %s", code, reason)
        if self._manual_close:
            self._manual_close = False
            self._state = ConnectionState.DISCONNECTED
            return
        self._handle_disconnection()

    def on_message(self, raw: str | bytes) -> None:
        if self.on_frame is not None:
            self.on_frame(raw)

    def _handle_disconnection(self) -> None:
        endpoint = self._endpoint
        if self._timer.pending or endpoint is None:
            return

        self._state = ConnectionState.DISCONNECTED
        if self._attempts >= self.max_attempts:
            LOGGER.error("Max reconnection attempts (%s) reached. Giving up.", self.max_attempts)
            return

        self._attempts += 1
        delay = backoff_delay(self._attempts, self.base_delay_ms, self.max_delay_ms, self.backoff_factor)
        LOGGER.info(
            "Reconnection attempt %s/%s in %sms...",
            self._attempts,
            self.max_attempts,
            delay,
        )
        self._state = ConnectionState.RECONNECTING
        self._timer.schedule(delay, lambda: self._open_now(endpoint))
