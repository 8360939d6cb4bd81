"""Servo extension: angle and pulse-width writes with throttling and sweeps."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum

from pardalote.core.model import DecodedMessage, DeviceType, Number
from pardalote.core.timers import CancellableTimer
from pardalote.extensions.base import Extension

LOGGER = logging.getLogger(__name__)

DEFAULT_MIN_PULSE = 544
DEFAULT_MAX_PULSE = 2400


class ServoAction(IntEnum):
    ATTACH = 20
    DETACH = 21
    WRITE = 22
    WRITE_MICROSECONDS = 23
    READ = 24
    ATTACHED = 25


@dataclass(frozen=True)
class ServoState:
    logical_id: int | None
    pin: int
    attached: bool
    current_angle: float
    current_micros: float
    min_pulse: int
    max_pulse: int
    threshold: int


class Servo(Extension):
    device_type = DeviceType.SERVO

    def __init__(self) -> None:
        super().__init__()
        self.pin = -1
        self.is_attached = False
        self.current_angle: float = 90
        self.current_micros: float = 1500
        self.min_pulse = DEFAULT_MIN_PULSE
        self.max_pulse = DEFAULT_MAX_PULSE
        self.last_write_time: float = 0
        self.write_throttle: float = 20
        self.threshold = 1
        self._sweep_abort = False
        self._pending_write: CancellableTimer | None = None

    @property
    def pending_write(self) -> CancellableTimer:
        if self._pending_write is None:
            self._pending_write = CancellableTimer(self.host.scheduler)
        return self._pending_write

    def attach(self, pin: int, min_pulse: int = DEFAULT_MIN_PULSE, max_pulse: int = DEFAULT_MAX_PULSE) -> Servo:
        self.pin = pin
        self.min_pulse = min_pulse
        self.max_pulse = max_pulse
        self.send(ServoAction.ATTACH, pin, min_pulse, max_pulse)
        self.is_attached = True
        LOGGER.info("Servo %s attached to pin %s", self.logical_id, pin)
        return self

    def detach(self) -> Servo:
        self.pending_write.cancel()
        self.send(ServoAction.DETACH)
        self.is_attached = False
        self.pin = -1
        LOGGER.info("Servo %s detached", self.logical_id)
        return self

    def write(self, angle: Number) -> Servo:
        """Move to ``angle`` degrees; writes inside the throttle window coalesce to the latest."""
        self._sweep_abort = True
        if not self.is_attached:
            LOGGER.warning("Servo %s not attached", self.logical_id)
            return self

        # Only the latest request may still be pending.
        self.pending_write.cancel()
        target = max(0, min(180, round(angle)))
        if abs(target - self.current_angle) < self.threshold:
            return self

        elapsed = self.host.scheduler.now() - self.last_write_time
        if elapsed < self.write_throttle:
            self.pending_write.schedule(self.write_throttle - elapsed, lambda: self._send_write(target))
        else:
            self._send_write(target)
        return self

    def _send_write(self, angle: Number) -> None:
        self.send(ServoAction.WRITE, angle)
        self.current_angle = angle
        self.current_micros = self.angle_to_micros(angle)
        self.last_write_time = self.host.scheduler.now()
        LOGGER.debug("Servo %s angle set to %s", self.logical_id, angle)

    def write_microseconds(self, microseconds: Number) -> Servo:
        self._sweep_abort = True
        if not self.is_attached:
            LOGGER.warning("Servo %s not attached", self.logical_id)
            return self

        self.pending_write.cancel()
        micros = max(self.min_pulse, min(self.max_pulse, round(microseconds)))
        micros_per_degree = (self.max_pulse - self.min_pulse) / 180
        if abs(micros - self.current_micros) < self.threshold * micros_per_degree:
            return self

        self.send(ServoAction.WRITE_MICROSECONDS, micros)
        self.current_micros = micros
        self.current_angle = self.micros_to_angle(micros)
        self.last_write_time = self.host.scheduler.now()
        LOGGER.debug("Servo %s microseconds set to %s", self.logical_id, micros)
        return self

    def angle_to_micros(self, angle: Number) -> float:
        return self.min_pulse + (angle / 180) * (self.max_pulse - self.min_pulse)

    def micros_to_angle(self, microseconds: Number) -> float:
        return ((microseconds - self.min_pulse) / (self.max_pulse - self.min_pulse)) * 180

    def read(self) -> float:
        return self.current_angle

    def attached(self) -> bool:
        """Ask the board for its attached flag and return the last known one."""
        self.send(ServoAction.ATTACHED)
        return self.is_attached

    def center(self) -> Servo:
        return self.write(90)

    def to_min(self) -> Servo:
        return self.write(0)

    def to_max(self) -> Servo:
        return self.write(180)

    async def sweep(self, start: Number = 0, end: Number = 180, duration: float = 2000, steps: int = 50) -> None:
        """Step from ``start`` to ``end`` over ``duration`` ms; any later write aborts it."""
        if not self.is_attached:
            LOGGER.warning("Servo %s not attached", self.logical_id)
            return

        self._sweep_abort = False
        steps = max(1, round(steps))
        step_delay = duration / steps
        angle_step = (end - start) / steps
        self.pending_write.cancel()

        for i in range(steps + 1):
            if self._sweep_abort:
                LOGGER.info("Servo %s sweep aborted", self.logical_id)
                break
            self._send_write(round(start + angle_step * i))
            await self.host.scheduler.sleep(step_delay)
            await self.pending_write.wait_idle()

    def set_write_throttle(self, ms: float) -> Servo:
        self.write_throttle = max(0, ms)
        return self

    def set_threshold(self, threshold: Number) -> Servo:
        self.threshold = max(0, round(threshold))
        return self

    def state(self) -> ServoState:
        return ServoState(
            logical_id=self.logical_id,
            pin=self.pin,
            attached=self.is_attached,
            current_angle=self.current_angle,
            current_micros=self.current_micros,
            min_pulse=self.min_pulse,
            max_pulse=self.max_pulse,
            threshold=self.threshold,
        )

    def handle_message(self, message: DecodedMessage) -> None:
        if message.type == ServoAction.READ:
            self.current_angle = message.value
            self.current_micros = self.angle_to_micros(message.value)
            LOGGER.debug("Servo %s read angle: %s", self.logical_id, message.value)
        elif message.type == ServoAction.ATTACHED:
            self.is_attached = message.value == 1
            LOGGER.debug("Servo %s attached status: %s", self.logical_id, self.is_attached)
