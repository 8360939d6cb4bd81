"""Inbound frame decoding and dispatch to pin events or extensions."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any

from jsonschema import ValidationError

from pardalote.core.config import load_schema_validator
from pardalote.core.errors import FrameDecodeError
from pardalote.core.events import EventRegistry
from pardalote.core.extensions import ExtensionRegistry
from pardalote.core.model import (
    ID_BLOCK_SIZE,
    PIN_ID_LIMIT,
    DecodedMessage,
    DeviceType,
    EventKind,
    InboundItem,
)

LOGGER = logging.getLogger(__name__)

# Inbound id blocks: block n covers ids [n * 1000, (n + 1) * 1000).
EXTENSION_ID_BLOCKS: dict[int, DeviceType] = {
    1: DeviceType.SERVO,
    2: DeviceType.ULTRASONIC,
}


@lru_cache(maxsize=1)
def _inbound_validator() -> Any:
    return load_schema_validator("inbound.schema.json")


def decode_inbound(raw: str | bytes) -> list[InboundItem]:
    try:
        doc = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise FrameDecodeError(f"Inbound frame is not valid JSON: {exc}") from exc

    try:
        _inbound_validator().validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise FrameDecodeError(f"Inbound frame rejected{where}: {exc.message}") from exc

    return [InboundItem(id=int(item["id"]), type=int(item["type"]), value=item["value"]) for item in doc["data"]]


class InboundRouter:
    def __init__(self, events: EventRegistry, extensions: ExtensionRegistry) -> None:
        self._events = events
        self._extensions = extensions
        self.decode_failures = 0
        self.unmatched = 0

    def handle_frame(self, raw: str | bytes) -> int:
        """Decode and dispatch one frame; returns the number of items delivered."""
        try:
            items = decode_inbound(raw)
        except FrameDecodeError as exc:
            self.decode_failures += 1
            LOGGER.warning("Dropping inbound frame: %s", exc)
            return 0

        delivered = 0
        for item in items:
            if self.route(item):
                delivered += 1
        return delivered

    def route(self, item: InboundItem) -> bool:
        if item.id < PIN_ID_LIMIT:
            return self._route_pin(item)
        return self._route_extension(item)

    def _route_pin(self, item: InboundItem) -> bool:
        try:
            kind = EventKind(item.type)
        except ValueError:
            LOGGER.warning("Unknown message type %s for pin %s, dropped", item.type, item.id)
            return False
        self._events.record_inbound(item.id, kind, item.value)
        return True

    def _route_extension(self, item: InboundItem) -> bool:
        block, logical_id = divmod(item.id, ID_BLOCK_SIZE)
        device_type = EXTENSION_ID_BLOCKS.get(block)
        extension = None
        if device_type is not None:
            extension = self._extensions.find(device_type, logical_id)

        if extension is None:
            self.unmatched += 1
            LOGGER.warning("No extension found for message: %s", item)
            return False

        try:
            extension.handle_message(DecodedMessage(id=logical_id, type=item.type, value=item.value))
        except Exception:
            LOGGER.exception("Extension handler failed for message: %s", item)
            return False
        return True
