"""Strict-FIFO outbound queue that flushes as one batch frame per send."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable

from pardalote.core.errors import TransportError
from pardalote.core.model import PROTOCOL_VERSION, BatchFrame, CommandDescriptor

LOGGER = logging.getLogger(__name__)


def encode_frame(frame: BatchFrame) -> str:
    return json.dumps(frame.to_wire(), separators=(",", ":"))


class OutboundQueue:
    """Accumulates command descriptors and sends them in enqueue order.

    ``send`` receives one serialized frame; ``is_connected`` gates flushing.
    A flush drains the whole queue in one step, so anything enqueued while a
    send is in progress is left for the next frame.
    """

    def __init__(
        self,
        send: Callable[[str], None],
        is_connected: Callable[[], bool],
        *,
        version: int = PROTOCOL_VERSION,
        requeue_on_failure: bool = False,
    ) -> None:
        self._send = send
        self._is_connected = is_connected
        self.version = version
        self.requeue_on_failure = requeue_on_failure
        self._items: list[CommandDescriptor] = []
        self._flushing = False
        self.frames_sent = 0
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def flushing(self) -> bool:
        return self._flushing

    def pending(self) -> tuple[CommandDescriptor, ...]:
        return tuple(self._items)

    def enqueue(self, items: CommandDescriptor | Iterable[CommandDescriptor]) -> None:
        if isinstance(items, CommandDescriptor):
            self._items.append(items)
        else:
            self._items.extend(items)

        if self._is_connected() and not self._flushing:
            self.flush()

    def flush(self) -> int:
        """Send everything queued as one frame; returns the number of descriptors sent."""
        if self._flushing or not self._items or not self._is_connected():
            return 0

        self._flushing = True
        snapshot, self._items = self._items, []
        frame = BatchFrame(data=tuple(snapshot), version=self.version)
        sent = 0
        try:
            payload = encode_frame(frame)
            self._send(payload)
            sent = len(snapshot)
            self.frames_sent += 1
            LOGGER.debug("Batched message sent: %s", payload)
        except TransportError as exc:
            if self.requeue_on_failure:
                self._items[:0] = snapshot
                LOGGER.warning("Failed to send batch of %s message(s), re-queued: %s", len(snapshot), exc)
            else:
                self.dropped += len(snapshot)
                LOGGER.error("Failed to send batch of %s message(s), dropped: %s", len(snapshot), exc)
        finally:
            self._flushing = False

        if sent and self._items:
            sent += self.flush()
        return sent
