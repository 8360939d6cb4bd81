"""NeoPixel strip extension.

Pixel changes are buffered locally and only leave the host on :meth:`NeoPixel.show`,
which queues them followed by a single show command. Changes smaller than the
colour-distance threshold are skipped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from pardalote.core.errors import UsageError
from pardalote.core.model import CommandDescriptor, DecodedMessage, DeviceType, Number
from pardalote.extensions.base import Extension

LOGGER = logging.getLogger(__name__)

NEO_RGB = 0x06
NEO_RBG = 0x09
NEO_GRB = 0x52
NEO_GBR = 0xA1
NEO_BRG = 0x58
NEO_BGR = 0xA4

NEO_KHZ800 = 0x0000
NEO_KHZ400 = 0x0100


class NeoPixelAction(IntEnum):
    INIT = 10
    SET_PIXEL = 11
    FILL = 12
    CLEAR = 13
    BRIGHTNESS = 14
    SHOW = 15


@dataclass(frozen=True)
class RGBW:
    r: int = 0
    g: int = 0
    b: int = 0
    w: int = 0

    def distance(self, other: RGBW) -> float:
        return math.sqrt(
            (self.r - other.r) ** 2
            + (self.g - other.g) ** 2
            + (self.b - other.b) ** 2
            + (self.w - other.w) ** 2
        )

    def packed(self) -> int:
        return ((self.w & 0xFF) << 24) | ((self.r & 0xFF) << 16) | ((self.g & 0xFF) << 8) | (self.b & 0xFF)


@dataclass(frozen=True)
class Packed:
    """A colour packed as 0xWWRRGGBB."""

    value: int


@dataclass(frozen=True)
class Components:
    r: Number
    g: Number
    b: Number
    w: Number = 0


ColorSpec = Union[Packed, Components]

BLACK = RGBW()


def to_rgbw(color: ColorSpec) -> RGBW:
    if isinstance(color, Packed):
        value = int(color.value) & 0xFFFFFFFF
        return RGBW(r=(value >> 16) & 0xFF, g=(value >> 8) & 0xFF, b=value & 0xFF, w=(value >> 24) & 0xFF)
    if isinstance(color, Components):
        return RGBW(r=round(color.r), g=round(color.g), b=round(color.b), w=round(color.w))
    raise UsageError(f"Expected Packed or Components colour, got {type(color).__name__}")


class NeoPixel(Extension):
    device_type = DeviceType.NEO_PIXEL

    def __init__(self, threshold: float = 5) -> None:
        super().__init__()
        self.pixels: dict[int, RGBW] = {}
        self.pending: list[CommandDescriptor] = []
        self.brightness = 255
        self.num_pixels = 0
        self.threshold = threshold

    @staticmethod
    def color(r: int, g: int, b: int, w: int = 0) -> int:
        return RGBW(r, g, b, w).packed()

    def init(self, pin: int, num_pixels: int, pixel_type: int = NEO_GRB + NEO_KHZ800) -> NeoPixel:
        self.num_pixels = num_pixels
        self.pixels.clear()
        self.pending.append(self.command(NeoPixelAction.INIT, pin, num_pixels, pixel_type))
        return self

    def set_pixel_color(self, index: int, color: ColorSpec) -> NeoPixel:
        rgbw = to_rgbw(color)
        if rgbw.distance(self.pixels.get(index, BLACK)) > self.threshold:
            if rgbw.w > 0:
                self.pending.append(self.command(NeoPixelAction.SET_PIXEL, index, rgbw.r, rgbw.g, rgbw.b, rgbw.w))
            else:
                self.pending.append(self.command(NeoPixelAction.SET_PIXEL, index, rgbw.r, rgbw.g, rgbw.b))
            self.pixels[index] = rgbw
        return self

    def fill(self, color: ColorSpec, first: int = 0, count: int = 0) -> NeoPixel:
        """Fill ``count`` pixels from ``first``; ``count=0`` fills to the end of the strip."""
        rgbw = to_rgbw(color)
        start = round(first)
        span = round(count) or (self.num_pixels - start)

        changed = False
        for i in range(start, min(start + span, self.num_pixels)):
            if rgbw.distance(self.pixels.get(i, BLACK)) > self.threshold:
                self.pixels[i] = rgbw
                changed = True

        if changed:
            self.pending.append(self.command(NeoPixelAction.FILL, rgbw.packed(), start, span))
        return self

    def clear(self) -> NeoPixel:
        self.pending.append(self.command(NeoPixelAction.CLEAR))
        self.pixels = {i: BLACK for i in range(self.num_pixels)}
        return self

    def set_brightness(self, value: Number) -> NeoPixel:
        level = round(value)
        if abs(level - self.brightness) >= self.threshold:
            self.pending.append(self.command(NeoPixelAction.BRIGHTNESS, level))
            self.brightness = level
        return self

    def show(self) -> NeoPixel:
        if self.pending:
            batch = [*self.pending, self.command(NeoPixelAction.SHOW)]
            self.pending = []
            self.host.send(batch)
        return self

    def get_pixel_color(self, index: int) -> int:
        if index < 0 or index >= self.num_pixels:
            return 0
        return self.pixels.get(index, BLACK).packed()

    def set_threshold(self, threshold: Number) -> NeoPixel:
        self.threshold = round(threshold)
        return self

    def handle_message(self, message: DecodedMessage) -> None:
        LOGGER.debug("NeoPixel %s ignoring inbound message: %s", self.logical_id, message)
