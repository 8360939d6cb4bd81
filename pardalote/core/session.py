"""Session layer: wires transport, reconnection, queue, registries and router."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from pardalote.core.config import SessionConfig
from pardalote.core.events import EventRegistry
from pardalote.core.extensions import ExtensionRegistry
from pardalote.core.model import (
    Action,
    CommandDescriptor,
    ConnectionStatus,
    EventKind,
    ExtensionInfo,
    Number,
    PinMode,
)
from pardalote.core.outbound import OutboundQueue
from pardalote.core.reconnect import ReconnectionManager
from pardalote.core.router import InboundRouter
from pardalote.core.timers import AsyncioScheduler, Scheduler
from pardalote.extensions.base import Extension
from pardalote.transports.base import Transport
from pardalote.transports.websocket import WebSocketTransport

LOGGER = logging.getLogger(__name__)


def _round_half_up(value: Number) -> int:
    return int(math.floor(value + 0.5))


class BoardSession:
    def __init__(
        self,
        *,
        config: SessionConfig | None = None,
        transport: Transport | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        self._scheduler = scheduler or AsyncioScheduler()
        self.transport = transport or WebSocketTransport(open_timeout_s=self.config.open_timeout_s)
        self.connection = ReconnectionManager(
            self.transport,
            self._scheduler,
            max_attempts=self.config.max_reconnect_attempts,
            base_delay_ms=self.config.base_delay_ms,
            max_delay_ms=self.config.max_delay_ms,
            backoff_factor=self.config.backoff_factor,
        )
        self.queue = OutboundQueue(
            self.transport.send_frame,
            lambda: self.connection.connected,
            version=self.config.protocol_version,
            requeue_on_failure=self.config.requeue_on_failure,
        )
        self.events = EventRegistry(self._scheduler.now)
        self.extensions = ExtensionRegistry(self)
        self.router = InboundRouter(self.events, self.extensions)

        self.connection.on_connected = self.queue.flush
        self.connection.on_frame = self.router.handle_frame

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def default_read_interval(self) -> float:
        return self.config.read_interval_ms

    # ---- connection ----
    def connect(self, host: str) -> None:
        endpoint = host if "://" in host else self.config.endpoint_for(host)
        self.connection.connect(endpoint)

    def reconnect(self) -> None:
        self.connection.reconnect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    def status(self) -> ConnectionStatus:
        return self.connection.status(pending_messages=len(self.queue))

    @property
    def connected(self) -> bool:
        return self.connection.connected

    def send(self, items: CommandDescriptor | Iterable[CommandDescriptor]) -> None:
        self.queue.enqueue(items)

    # ---- pins ----
    def pin_mode(self, pin: int, mode: PinMode | int) -> None:
        self.events.end(pin)
        self.send(CommandDescriptor(pin, Action.PIN_MODE, (int(mode),)))

    def digital_write(
        self,
        pin: int,
        value: int,
        interval: float | None = None,
        threshold: float = 0,
    ) -> bool:
        """Queue a digital write unless throttled or unchanged; returns True when queued."""
        value = int(value)
        if interval is None:
            interval = self.config.write_interval_ms
        event = self.events.register(pin, EventKind.DIGITAL_WRITE, interval, value, threshold)
        if not self.events.should_send(event, value):
            return False
        self.send(CommandDescriptor(pin, Action.DIGITAL_WRITE, (value,)))
        self.events.mark_sent(event, value)
        return True

    def analog_write(
        self,
        pin: int,
        value: Number,
        interval: float | None = None,
        threshold: float = 2,
    ) -> bool:
        """Queue an analog write unless throttled or within ``threshold``; returns True when queued."""
        int_value = _round_half_up(value)
        if interval is None:
            interval = self.config.write_interval_ms
        event = self.events.register(pin, EventKind.ANALOG_WRITE, interval, int_value, threshold)
        if not self.events.should_send(event, int_value):
            return False
        self.send(CommandDescriptor(pin, Action.ANALOG_WRITE, (int_value,)))
        self.events.mark_sent(event, int_value)
        return True

    def digital_read(self, pin: int, interval: float | None = None) -> Number:
        return self._read(pin, EventKind.DIGITAL_READ, interval)

    def analog_read(self, pin: int, interval: float | None = None) -> Number:
        return self._read(pin, EventKind.ANALOG_READ, interval)

    def _read(self, pin: int, kind: EventKind, interval: float | None) -> Number:
        if interval is None:
            interval = self.config.read_interval_ms
        event = self.events.register(pin, kind, interval)
        if event.last_update_time == 0:
            # The board reports periodically from here on; ask only once.
            self.send(CommandDescriptor(pin, int(kind), (interval,)))
            self.events.mark_sent(event)
        return event.last_value if event.last_value is not None else 0

    def end(self, pin: int) -> None:
        """Stop every periodic action on ``pin`` locally and on the board."""
        self.events.end(pin)
        self.send(CommandDescriptor(pin, Action.END, ()))
        LOGGER.info("Stopped periodic actions on pin %s", pin)

    # ---- extensions ----
    def add(self, name: str, extension: Extension) -> Extension:
        return self.extensions.add(name, extension)

    def extension(self, name: str) -> Extension:
        return self.extensions.get(name)

    def list_extensions(self) -> list[ExtensionInfo]:
        return self.extensions.list()
