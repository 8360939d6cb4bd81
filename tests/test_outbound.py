from __future__ import annotations

import json

from pardalote.core.errors import TransportSendError
from pardalote.core.model import Action, BatchFrame, CommandDescriptor
from pardalote.core.outbound import OutboundQueue, encode_frame


def _cmd(pin: int, value: int = 1) -> CommandDescriptor:
    return CommandDescriptor(pin, Action.DIGITAL_WRITE, (value,))


class RecordingSink:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.fail = False
        self.frames: list[dict] = []

    def send(self, payload: str) -> None:
        if self.fail:
            raise TransportSendError("socket gone")
        self.frames.append(json.loads(payload))

    def ids(self) -> list[int]:
        return [item["id"] for frame in self.frames for item in frame["data"]]


def test_encode_frame_matches_wire_layout() -> None:
    frame = BatchFrame(data=(CommandDescriptor(13, Action.ANALOG_READ, (200.0,)),))
    assert encode_frame(frame) == '{"header":{"version":1},"data":[{"id":13,"action":5,"params":[200]}]}'


def test_items_leave_in_enqueue_order_across_frames() -> None:
    sink = RecordingSink()
    queue = OutboundQueue(sink.send, lambda: sink.connected)

    queue.enqueue(_cmd(1))
    queue.enqueue(_cmd(2))
    queue.enqueue([_cmd(3), _cmd(4)])

    assert sink.ids() == [1, 2, 3, 4]
    assert len(sink.frames) == 3
    assert queue.frames_sent == 3


def test_offline_items_flush_as_one_frame_on_connect() -> None:
    sink = RecordingSink(connected=False)
    queue = OutboundQueue(sink.send, lambda: sink.connected)

    for pin in range(5):
        queue.enqueue(_cmd(pin))
    assert sink.frames == []
    assert len(queue) == 5

    sink.connected = True
    assert queue.flush() == 5

    assert len(sink.frames) == 1
    assert sink.ids() == [0, 1, 2, 3, 4]
    assert sink.frames[0]["header"] == {"version": 1}
    assert len(queue) == 0


def test_items_enqueued_during_send_go_in_next_frame() -> None:
    sink = RecordingSink()
    queue: OutboundQueue

    def send(payload: str) -> None:
        sink.send(payload)
        if len(sink.frames) == 1:
            queue.enqueue(_cmd(9))
            assert queue.flush() == 0

    queue = OutboundQueue(send, lambda: True)
    queue.enqueue([_cmd(1), _cmd(2)])

    assert [[item["id"] for item in frame["data"]] for frame in sink.frames] == [[1, 2], [9]]
    assert len(queue) == 0


def test_failed_send_drops_snapshot_by_default() -> None:
    sink = RecordingSink()
    sink.fail = True
    queue = OutboundQueue(sink.send, lambda: True)

    queue.enqueue([_cmd(1), _cmd(2)])

    assert len(queue) == 0
    assert queue.dropped == 2
    assert not queue.flushing

    sink.fail = False
    queue.enqueue(_cmd(3))
    assert sink.ids() == [3]


def test_failed_send_requeues_snapshot_at_head_when_enabled() -> None:
    sink = RecordingSink()
    sink.fail = True
    queue = OutboundQueue(sink.send, lambda: True, requeue_on_failure=True)

    queue.enqueue([_cmd(1), _cmd(2)])
    assert queue.pending() == (_cmd(1), _cmd(2))
    assert queue.dropped == 0

    sink.fail = False
    queue.enqueue(_cmd(3))
    assert len(sink.frames) == 1
    assert sink.ids() == [1, 2, 3]


def test_flush_with_nothing_queued_sends_nothing() -> None:
    sink = RecordingSink()
    queue = OutboundQueue(sink.send, lambda: True)

    assert queue.flush() == 0
    assert sink.frames == []


def test_protocol_version_is_stamped_on_every_frame() -> None:
    sink = RecordingSink()
    queue = OutboundQueue(sink.send, lambda: True, version=2)

    queue.enqueue(_cmd(1))
    assert sink.frames[0]["header"]["version"] == 2
