"""Stable public API for building applications on top of pardalote.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TypeVar

from pardalote.core.config import SessionConfig, load_config
from pardalote.core.errors import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    FrameDecodeError,
    PardaloteError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    UsageError,
)
from pardalote.core.model import (
    HIGH,
    LOW,
    Action,
    CommandDescriptor,
    ConnectionState,
    ConnectionStatus,
    DecodedMessage,
    DeviceType,
    EventKind,
    ExtensionInfo,
    Number,
    PinMode,
)
from pardalote.core.session import BoardSession
from pardalote.core.timers import AsyncioScheduler, CancellableTimer, Scheduler, VirtualScheduler
from pardalote.extensions.base import Extension
from pardalote.extensions.neopixel import Components, NeoPixel, Packed
from pardalote.extensions.servo import Servo
from pardalote.extensions.ultrasonic import DistanceUnit, Ultrasonic
from pardalote.transports.base import Transport
from pardalote.transports.websocket import WebSocketTransport

__all__ = [
    "PardaloteError",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "FrameDecodeError",
    "UsageError",
    "HIGH",
    "LOW",
    "Action",
    "CommandDescriptor",
    "ConnectionState",
    "ConnectionStatus",
    "DecodedMessage",
    "DeviceType",
    "EventKind",
    "ExtensionInfo",
    "PinMode",
    "SessionConfig",
    "load_config",
    "Scheduler",
    "AsyncioScheduler",
    "VirtualScheduler",
    "CancellableTimer",
    "Transport",
    "WebSocketTransport",
    "Extension",
    "Servo",
    "NeoPixel",
    "Packed",
    "Components",
    "Ultrasonic",
    "DistanceUnit",
    "Board",
]

E = TypeVar("E", bound=Extension)


class Board:
    """Public client for one microcontroller reachable over WebSocket.

    A `Board` wraps the session core (reconnection, batching, throttling and
    inbound routing) behind a stable API. Pin calls are safe to make before
    the connection is up; they are queued and flushed in order on connect.
    """

    def __init__(
        self,
        *,
        config: SessionConfig | None = None,
        config_path: str | Path | None = None,
        transport: Transport | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        if config is None:
            config = load_config(config_path)
        self._session = BoardSession(config=config, transport=transport, scheduler=scheduler)

    @property
    def config(self) -> SessionConfig:
        return self._session.config

    @property
    def connected(self) -> bool:
        return self._session.connected

    def connect(self, host: str) -> Board:
        self._session.connect(host)
        return self

    def reconnect(self) -> None:
        self._session.reconnect()

    def disconnect(self) -> None:
        self._session.disconnect()

    def status(self) -> ConnectionStatus:
        return self._session.status()

    def send(self, items: CommandDescriptor | Iterable[CommandDescriptor]) -> None:
        self._session.send(items)

    def pin_mode(self, pin: int, mode: PinMode | int) -> Board:
        self._session.pin_mode(pin, mode)
        return self

    def digital_write(self, pin: int, value: int, interval: float | None = None, threshold: float = 0) -> bool:
        return self._session.digital_write(pin, value, interval, threshold)

    def analog_write(self, pin: int, value: Number, interval: float | None = None, threshold: float = 2) -> bool:
        return self._session.analog_write(pin, value, interval, threshold)

    def digital_read(self, pin: int, interval: float | None = None) -> Number:
        return self._session.digital_read(pin, interval)

    def analog_read(self, pin: int, interval: float | None = None) -> Number:
        return self._session.analog_read(pin, interval)

    def end(self, pin: int) -> Board:
        self._session.end(pin)
        return self

    def add(self, name: str, extension: E) -> E:
        self._session.add(name, extension)
        return extension

    def extension(self, name: str) -> Extension:
        return self._session.extension(name)

    def list_extensions(self) -> list[ExtensionInfo]:
        return self._session.list_extensions()

    def servo(self, name: str) -> Servo:
        return self.add(name, Servo())

    def neopixel(self, name: str) -> NeoPixel:
        return self.add(name, NeoPixel())

    def ultrasonic(self, name: str) -> Ultrasonic:
        return self.add(name, Ultrasonic())
