"""Ultrasonic distance sensor extension (3-wire and 4-wire sensors)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum

from pardalote.core.model import Action, DecodedMessage, DeviceType, Number
from pardalote.extensions.base import Extension

LOGGER = logging.getLogger(__name__)


class UltrasonicAction(IntEnum):
    ATTACH = 30
    DETACH = 31
    READ = 32
    SET_TIMEOUT = 33


class DistanceUnit(IntEnum):
    CM = 0
    INCH = 1


@dataclass(frozen=True)
class UltrasonicState:
    logical_id: int | None
    trig_pin: int
    echo_pin: int | None
    three_wire: bool
    attached: bool
    timeout: int
    last_distance: Number
    read_throttle: float
    poll_interval: float | None


class Ultrasonic(Extension):
    device_type = DeviceType.ULTRASONIC

    def __init__(self) -> None:
        super().__init__()
        self.trig_pin = -1
        self.echo_pin: int | None = None
        self.is_attached = False
        self.timeout = 20
        self.last_distance: Number = -1
        self.read_throttle: float = 50
        self.poll_interval: float | None = None

    @property
    def three_wire(self) -> bool:
        return self.is_attached and self.echo_pin is None

    def attach(self, trig_pin: int, echo_pin: int | None = None) -> Ultrasonic:
        """Attach to ``trig_pin``; without ``echo_pin`` the sensor runs in 3-wire mode."""
        self.trig_pin = trig_pin
        self.echo_pin = echo_pin
        if echo_pin is None:
            self.send(UltrasonicAction.ATTACH, trig_pin)
            LOGGER.info("Ultrasonic sensor %s attached to pin %s (3-wire mode)", self.logical_id, trig_pin)
        else:
            self.send(UltrasonicAction.ATTACH, trig_pin, echo_pin)
            LOGGER.info(
                "Ultrasonic sensor %s attached to pin %s and %s (4-wire mode)",
                self.logical_id,
                trig_pin,
                echo_pin,
            )
        self.is_attached = True
        return self

    def detach(self) -> Ultrasonic:
        self.send(UltrasonicAction.DETACH)
        self.is_attached = False
        self.trig_pin = -1
        self.echo_pin = None
        self.poll_interval = None
        LOGGER.info("Ultrasonic sensor %s detached", self.logical_id)
        return self

    def read(self, unit: DistanceUnit = DistanceUnit.CM, interval: float | None = None) -> Number:
        """Return the last reported distance, requesting readings as needed.

        ``interval=0`` asks for a single reading; any other interval starts
        periodic reporting, requested once until :meth:`stop`.
        """
        if not self.is_attached:
            LOGGER.warning("Ultrasonic sensor %s not attached", self.logical_id)
            return -1

        if interval is None:
            interval = self.host.default_read_interval

        if interval == 0:
            self.send(UltrasonicAction.READ, int(unit))
        elif self.poll_interval is None:
            self.send(UltrasonicAction.READ, int(unit), interval)
            self.poll_interval = interval
        return self.last_distance

    def read_cm(self) -> Number:
        return self.read(DistanceUnit.CM)

    def read_inches(self) -> Number:
        return self.read(DistanceUnit.INCH)

    def stop(self) -> Ultrasonic:
        self.send(Action.END)
        self.poll_interval = None
        LOGGER.info("Ultrasonic sensor %s stopped periodic reads", self.logical_id)
        return self

    def set_timeout(self, milliseconds: int) -> Ultrasonic:
        if not self.is_attached:
            LOGGER.warning("Ultrasonic sensor %s not attached", self.logical_id)
            return self
        self.timeout = max(1, min(int(milliseconds), 1000))
        self.send(UltrasonicAction.SET_TIMEOUT, self.timeout)
        return self

    def set_read_throttle(self, milliseconds: float) -> Ultrasonic:
        self.read_throttle = max(10, milliseconds)
        return self

    @property
    def distance(self) -> Number:
        return self.last_distance

    def is_in_range(self, max_distance: Number) -> bool:
        return 0 < self.last_distance <= max_distance

    def state(self) -> UltrasonicState:
        return UltrasonicState(
            logical_id=self.logical_id,
            trig_pin=self.trig_pin,
            echo_pin=self.echo_pin,
            three_wire=self.three_wire,
            attached=self.is_attached,
            timeout=self.timeout,
            last_distance=self.last_distance,
            read_throttle=self.read_throttle,
            poll_interval=self.poll_interval,
        )

    def handle_message(self, message: DecodedMessage) -> None:
        if message.type == UltrasonicAction.READ:
            self.last_distance = message.value
            if message.value >= 0:
                LOGGER.debug("Ultrasonic sensor %s distance: %.1f", self.logical_id, message.value)
            else:
                LOGGER.debug("Ultrasonic sensor %s distance: timeout", self.logical_id)
