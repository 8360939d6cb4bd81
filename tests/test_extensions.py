from __future__ import annotations

import asyncio
import json

import pytest

from pardalote.core.errors import TransportSendError, UsageError
from pardalote.core.model import ExtensionInfo
from pardalote.core.session import BoardSession
from pardalote.core.timers import VirtualScheduler
from pardalote.extensions.neopixel import Components, NeoPixel, Packed, to_rgbw
from pardalote.extensions.servo import Servo
from pardalote.extensions.ultrasonic import DistanceUnit, Ultrasonic
from pardalote.transports.base import CLOSE_NORMAL


class FakeTransport:
    def __init__(self) -> None:
        self.listener = None
        self.frames: list[dict] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def bind(self, listener) -> None:
        self.listener = listener

    def open(self, endpoint: str) -> None:
        self._open = True
        self.listener.on_open()

    def send_frame(self, frame: str) -> None:
        if not self._open:
            raise TransportSendError("not open")
        self.frames.append(json.loads(frame))

    def close(self) -> None:
        self._open = False
        self.listener.on_close(CLOSE_NORMAL, "closed by client")

    def deliver(self, *items: tuple[int, int, float]) -> None:
        self.listener.on_message(json.dumps({"data": [{"id": i, "type": t, "value": v} for i, t, v in items]}))

    def commands(self) -> list[tuple[int, int, list]]:
        return [(item["id"], item["action"], item["params"]) for frame in self.frames for item in frame["data"]]


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def session(transport: FakeTransport, scheduler: VirtualScheduler) -> BoardSession:
    session = BoardSession(transport=transport, scheduler=scheduler)
    session.connect("192.168.4.1")
    return session


# ---- registry ----


def test_logical_ids_are_sequential_and_never_reused(session: BoardSession) -> None:
    servo = Servo()
    session.add("arm", servo)
    with pytest.raises(UsageError):
        session.add("again", servo)
    strip = session.add("strip", NeoPixel())

    assert servo.logical_id == 0
    assert strip.logical_id == 2
    assert session.list_extensions() == [
        ExtensionInfo(name="arm", device_type=201, logical_id=0, type_name="Servo"),
        ExtensionInfo(name="strip", device_type=200, logical_id=2, type_name="NeoPixel"),
    ]


def test_unknown_extension_name_lists_available(session: BoardSession) -> None:
    session.add("arm", Servo())
    with pytest.raises(UsageError, match="Available: arm"):
        session.extension("gripper")


def test_unbound_extension_cannot_send() -> None:
    with pytest.raises(UsageError):
        Servo().attach(9)


# ---- servo ----


def test_servo_attach_and_write(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)
    servo.write(45.4)

    assert transport.commands() == [
        (201, 20, [0, 9, 544, 2400]),
        (201, 22, [0, 45]),
    ]
    assert servo.read() == 45
    assert servo.state().attached


def test_servo_writes_inside_throttle_window_coalesce(
    session: BoardSession, transport: FakeTransport, scheduler: VirtualScheduler
) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)
    servo.write(45)
    servo.write(60)
    servo.write(70)

    scheduler.advance(19)
    assert [params for _, action, params in transport.commands() if action == 22] == [[0, 45]]

    scheduler.advance(1)
    assert [params for _, action, params in transport.commands() if action == 22] == [[0, 45], [0, 70]]
    assert servo.current_angle == 70


def test_servo_return_to_current_angle_cancels_pending_write(
    session: BoardSession, transport: FakeTransport, scheduler: VirtualScheduler
) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)
    servo.write(100)
    scheduler.advance(25)
    servo.write(120)
    servo.write(150)
    servo.write(120)

    scheduler.advance(100)
    assert [params[1] for _, action, params in transport.commands() if action == 22] == [100, 120]
    assert servo.read() == 120
    assert not servo.pending_write.pending


def test_servo_write_microseconds_supersedes_pending_angle_write(
    session: BoardSession, transport: FakeTransport, scheduler: VirtualScheduler
) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)
    servo.write(100)
    servo.write(150)
    servo.write_microseconds(544)

    scheduler.advance(100)
    assert [(action, params[1]) for _, action, params in transport.commands()[1:]] == [(22, 100), (23, 544)]
    assert servo.read() == 0


def test_servo_skips_changes_below_threshold(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)
    servo.write(90.4)
    servo.write(200)

    assert transport.commands()[1:] == [(201, 22, [0, 180])]


def test_servo_write_without_attach_is_ignored(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    servo.write(10)
    assert transport.commands() == []


def test_servo_write_microseconds_updates_angle(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)
    servo.write_microseconds(1500)
    servo.write_microseconds(2600)

    assert transport.commands()[1:] == [(201, 23, [0, 2400])]
    assert servo.current_angle == 180


def test_servo_sweep_sends_each_step(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)

    asyncio.run(servo.sweep(0, 180, duration=100, steps=4))

    angles = [params[1] for _, action, params in transport.commands() if action == 22]
    assert angles == [0, 45, 90, 135, 180]


def test_servo_sweep_aborted_by_later_write(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)

    async def scenario() -> None:
        task = asyncio.create_task(servo.sweep(0, 180, duration=100, steps=4))
        await asyncio.sleep(0)
        servo.write(10)
        await task

    asyncio.run(scenario())

    angles = [params[1] for _, action, params in transport.commands() if action == 22]
    assert angles == [0, 10]


def test_servo_inbound_readings(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    servo.attach(9)

    transport.deliver((1000, 24, 120), (1000, 25, 0))

    assert servo.current_angle == 120
    assert not servo.is_attached


# ---- neopixel ----


def test_neopixel_show_sends_buffered_changes_then_show(session: BoardSession, transport: FakeTransport) -> None:
    strip = session.add("strip", NeoPixel())
    strip.init(6, 8)
    strip.set_pixel_color(0, Components(255, 0, 0))
    strip.set_pixel_color(1, Packed(0x0000FF00))
    assert transport.frames == []

    strip.show()

    assert len(transport.frames) == 1
    assert transport.commands() == [
        (200, 10, [0, 6, 8, 0x52]),
        (200, 11, [0, 0, 255, 0, 0]),
        (200, 11, [0, 1, 0, 255, 0]),
        (200, 15, [0]),
    ]
    assert strip.get_pixel_color(1) == 0x0000FF00


def test_neopixel_skips_small_colour_changes(session: BoardSession, transport: FakeTransport) -> None:
    strip = session.add("strip", NeoPixel())
    strip.init(6, 8)
    strip.set_pixel_color(0, Components(255, 0, 0)).show()
    sent = len(transport.frames)

    strip.set_pixel_color(0, Components(253, 1, 0)).show()
    assert len(transport.frames) == sent


def test_neopixel_white_channel_is_sent_only_when_set(session: BoardSession, transport: FakeTransport) -> None:
    strip = session.add("strip", NeoPixel())
    strip.init(6, 4)
    strip.set_pixel_color(2, Components(0, 0, 0, 200)).show()

    assert (200, 11, [0, 2, 0, 0, 0, 200]) in transport.commands()


def test_neopixel_fill_brightness_and_clear(session: BoardSession, transport: FakeTransport) -> None:
    strip = session.add("strip", NeoPixel())
    strip.init(6, 4).show()
    transport.frames.clear()

    strip.fill(Packed(0x00FF0000))
    strip.fill(Packed(0x00FF0000))
    strip.set_brightness(253)
    strip.set_brightness(100)
    strip.show()

    assert transport.commands() == [
        (200, 12, [0, 0xFF0000, 0, 4]),
        (200, 14, [0, 100]),
        (200, 15, [0]),
    ]
    assert strip.get_pixel_color(3) == 0xFF0000
    assert strip.get_pixel_color(4) == 0

    strip.clear().show()
    assert strip.get_pixel_color(3) == 0


def test_colour_spec_rejects_other_types() -> None:
    assert to_rgbw(Packed(0x11223344)).w == 0x11
    assert NeoPixel.color(1, 2, 3) == 0x010203
    with pytest.raises(UsageError):
        to_rgbw("red")  # type: ignore[arg-type]


# ---- ultrasonic ----


def test_ultrasonic_attach_modes(session: BoardSession, transport: FakeTransport) -> None:
    sonar = session.add("sonar", Ultrasonic())
    sonar.attach(7)
    assert sonar.three_wire
    sonar.attach(7, 8)
    assert not sonar.three_wire

    assert transport.commands() == [(202, 30, [0, 7]), (202, 30, [0, 7, 8])]


def test_ultrasonic_periodic_read_requested_once_until_stop(
    session: BoardSession, transport: FakeTransport
) -> None:
    sonar = session.add("sonar", Ultrasonic())
    sonar.attach(7)
    transport.frames.clear()

    assert sonar.read() == -1
    sonar.read()
    sonar.stop()
    sonar.read_inches()

    assert transport.commands() == [
        (202, 32, [0, 0, 200]),
        (202, 6, [0]),
        (202, 32, [0, 1, 200]),
    ]


def test_ultrasonic_single_reads(session: BoardSession, transport: FakeTransport) -> None:
    sonar = session.add("sonar", Ultrasonic())
    sonar.attach(7)
    transport.frames.clear()

    sonar.read(interval=0)
    sonar.read(DistanceUnit.INCH, interval=0)

    assert transport.commands() == [(202, 32, [0, 0]), (202, 32, [0, 1])]
    assert sonar.poll_interval is None


def test_ultrasonic_requires_attach(session: BoardSession, transport: FakeTransport) -> None:
    sonar = session.add("sonar", Ultrasonic())

    assert sonar.read() == -1
    sonar.set_timeout(50)
    assert transport.commands() == []


def test_ultrasonic_timeout_is_clamped(session: BoardSession, transport: FakeTransport) -> None:
    sonar = session.add("sonar", Ultrasonic())
    sonar.attach(7)
    sonar.set_timeout(5000)

    assert transport.commands()[-1] == (202, 33, [0, 1000])


def test_inbound_distance_reaches_matching_sensor(session: BoardSession, transport: FakeTransport) -> None:
    servo = session.add("arm", Servo())
    sonar = session.add("sonar", Ultrasonic())

    transport.deliver((2001, 32, 42.5))

    assert sonar.distance == 42.5
    assert sonar.is_in_range(50)
    assert not sonar.is_in_range(40)
    assert servo.current_angle == 90
