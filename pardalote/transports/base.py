"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006


class TransportListener(Protocol):
    def on_open(self) -> None:
        """Called once when the connection is established."""

    def on_close(self, code: int, reason: str) -> None:
        """Called once when the connection ends or an attempt fails."""

    def on_message(self, raw: str | bytes) -> None:
        """Called for every inbound frame between ``on_open`` and ``on_close``."""


class Transport(Protocol):
    @property
    def is_open(self) -> bool:
        """True while frames can be sent."""

    def bind(self, listener: TransportListener) -> None:
        """Register the single listener receiving connection callbacks."""

    def open(self, endpoint: str) -> None:
        """Start a connection attempt; failures arrive through ``on_close``."""

    def send_frame(self, frame: str) -> None:
        """Send one serialized batch, raising TransportSendError when not open."""

    def close(self) -> None:
        """Terminate the current connection or attempt."""
