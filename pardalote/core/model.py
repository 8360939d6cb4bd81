"""Core data models shared by the session, queue, registry and router."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Union

Number = Union[int, float]

PROTOCOL_VERSION = 1

PIN_ID_LIMIT = 1000
ID_BLOCK_SIZE = 1000

LOW = 0
HIGH = 1

# Arduino UNO R4 pin numbers
D0, D1, D2, D3, D4, D5, D6, D7 = range(8)
D8, D9, D10, D11, D12, D13 = range(8, 14)
A0, A1, A2, A3, A4, A5 = range(14, 20)


def wire_number(value: Number) -> Number:
    """Whole floats go on the wire as integers."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class Action(IntEnum):
    PIN_MODE = 1
    DIGITAL_WRITE = 2
    DIGITAL_READ = 3
    ANALOG_WRITE = 4
    ANALOG_READ = 5
    END = 6


class EventKind(IntEnum):
    """Kinds of per-channel registrations; values match the wire action codes."""

    DIGITAL_WRITE = 2
    DIGITAL_READ = 3
    ANALOG_WRITE = 4
    ANALOG_READ = 5

    @property
    def is_write(self) -> bool:
        return self in (EventKind.DIGITAL_WRITE, EventKind.ANALOG_WRITE)


class PinMode(IntEnum):
    INPUT = 0
    OUTPUT = 1
    INPUT_PULLUP = 2
    INPUT_PULLDOWN = 3
    OUTPUT_OPENDRAIN = 4
    ANALOG_INPUT = 8
    ANALOG_OUTPUT = 10


class DeviceType(IntEnum):
    NEO_PIXEL = 200
    SERVO = 201
    ULTRASONIC = 202


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class CommandDescriptor:
    channel_id: int
    action: int
    params: tuple[Number, ...] = ()

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": int(self.channel_id),
            "action": int(self.action),
            "params": [wire_number(param) for param in self.params],
        }


@dataclass(frozen=True)
class BatchFrame:
    data: tuple[CommandDescriptor, ...]
    version: int = PROTOCOL_VERSION

    def to_wire(self) -> dict[str, Any]:
        return {
            "header": {"version": self.version},
            "data": [descriptor.to_wire() for descriptor in self.data],
        }


@dataclass
class RegisteredEvent:
    """Throttle/poll state for one (channel id, kind) pair.

    ``last_update_time`` is a scheduler timestamp in milliseconds; 0 means the
    channel has never been sent.
    """

    channel_id: int
    kind: EventKind
    interval: float
    last_update_time: float = 0
    last_value: Number | None = None
    last_sent_value: Number | None = None
    threshold: float = 0
    passive: bool = False


@dataclass(frozen=True)
class InboundItem:
    id: int
    type: int
    value: Number


@dataclass(frozen=True)
class DecodedMessage:
    id: int
    type: int
    value: Number


@dataclass(frozen=True)
class ExtensionInfo:
    name: str
    device_type: int
    logical_id: int
    type_name: str


@dataclass(frozen=True)
class ConnectionStatus:
    state: ConnectionState
    reconnect_attempts: int
    max_reconnect_attempts: int
    endpoint: str | None
    pending_messages: int = 0

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def reconnecting(self) -> bool:
        return self.state is ConnectionState.RECONNECTING
