"""Per-channel throttle and polling state for pin writes and reads."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from pardalote.core.model import EventKind, Number, RegisteredEvent

LOGGER = logging.getLogger(__name__)


class EventRegistry:
    """Registered events keyed by ``(channel_id, kind)``.

    A channel may hold a write and a read registration at the same time.
    ``clock`` returns the current time in milliseconds.
    """

    def __init__(self, clock: Callable[[], float]) -> None:
        self._clock = clock
        self._events: dict[tuple[int, EventKind], RegisteredEvent] = {}

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[RegisteredEvent]:
        return iter(list(self._events.values()))

    def get(self, channel_id: int, kind: EventKind) -> RegisteredEvent | None:
        return self._events.get((channel_id, kind))

    def for_channel(self, channel_id: int) -> list[RegisteredEvent]:
        return [event for (cid, _), event in self._events.items() if cid == channel_id]

    def register(
        self,
        channel_id: int,
        kind: EventKind,
        interval: float,
        initial_value: Number | None = None,
        threshold: float = 0,
    ) -> RegisteredEvent:
        event = self._events.get((channel_id, kind))
        if event is None:
            event = RegisteredEvent(
                channel_id=channel_id,
                kind=kind,
                interval=interval,
                last_value=initial_value,
                threshold=threshold,
            )
            self._events[(channel_id, kind)] = event
        else:
            event.interval = interval
            event.threshold = threshold
            event.passive = False
        return event

    def should_send(self, event: RegisteredEvent, new_value: Number | None = None) -> bool:
        if event.last_update_time != 0:
            if self._clock() - event.last_update_time < event.interval:
                return False

        if not event.kind.is_write:
            return True
        if event.last_sent_value is None:
            return True
        if event.kind is EventKind.DIGITAL_WRITE:
            return new_value != event.last_sent_value
        return abs(new_value - event.last_sent_value) > event.threshold

    def mark_sent(self, event: RegisteredEvent, value: Number | None = None) -> None:
        event.last_update_time = self._clock()
        if event.kind.is_write:
            event.last_sent_value = value

    def end(self, channel_id: int) -> int:
        """Remove every registration for ``channel_id``; returns how many were removed."""
        keys = [key for key in self._events if key[0] == channel_id]
        for key in keys:
            del self._events[key]
        return len(keys)

    def record_inbound(self, channel_id: int, kind: EventKind, value: Number) -> RegisteredEvent:
        event = self._events.get((channel_id, kind))
        if event is None:
            event = RegisteredEvent(channel_id=channel_id, kind=kind, interval=0, passive=True)
            self._events[(channel_id, kind)] = event
            LOGGER.debug("Unsolicited value for channel %s (kind %s)", channel_id, kind.name)
        event.last_value = value
        return event
