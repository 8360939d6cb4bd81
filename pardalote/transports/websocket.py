"""WebSocket transport implementation using the websockets asyncio client."""

from __future__ import annotations

import asyncio
import logging

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException

from pardalote.core.errors import TransportConnectError, TransportSendError
from pardalote.transports.base import CLOSE_ABNORMAL, CLOSE_NORMAL, TransportListener

LOGGER = logging.getLogger(__name__)


class WebSocketTransport:
    """One WebSocket connection at a time, driven by the running event loop.

    Each :meth:`open` starts a connection task tagged with a generation
    number. Callbacks from an older generation are dropped, so reopening
    abandons the previous connection without notifying the listener.
    Outbound frames go through a single writer task and leave in the order
    :meth:`send_frame` was called.
    """

    def __init__(
        self,
        *,
        open_timeout_s: float = 10.0,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._open_timeout_s = open_timeout_s
        self._loop = loop
        self._listener: TransportListener | None = None
        self._task: asyncio.Task[None] | None = None
        self._ws: ClientConnection | None = None
        self._outbox: asyncio.Queue[str] | None = None
        self._generation = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def bind(self, listener: TransportListener) -> None:
        self._listener = listener

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError as exc:
            raise TransportConnectError(
                "WebSocketTransport.open must be called while an asyncio event loop is running"
            ) from exc

    def open(self, endpoint: str) -> None:
        loop = self._get_loop()
        self._abandon()
        generation = self._generation
        outbox: asyncio.Queue[str] = asyncio.Queue()
        self._outbox = outbox
        LOGGER.info("Connecting to %s", endpoint)
        self._task = loop.create_task(self._run(endpoint, generation, outbox))

    def send_frame(self, frame: str) -> None:
        if not self._open or self._outbox is None:
            raise TransportSendError("WebSocket is not open")
        self._outbox.put_nowait(frame)

    def close(self) -> None:
        if self._task is None or self._task.done():
            return
        if self._ws is not None:
            # The reader loop ends on the close handshake and reports on_close.
            if self._open:
                self._open = False
                self._get_loop().create_task(self._ws.close())
            return
        # Still connecting: drop the attempt and report the close ourselves.
        self._abandon()
        if self._listener is not None:
            self._listener.on_close(CLOSE_NORMAL, "closed by client")

    def _abandon(self) -> None:
        self._generation += 1
        self._open = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._ws = None
        self._outbox = None

    async def _run(self, endpoint: str, generation: int, outbox: asyncio.Queue[str]) -> None:
        code, reason = CLOSE_ABNORMAL, ""
        try:
            async with connect(endpoint, open_timeout=self._open_timeout_s) as ws:
                if generation != self._generation:
                    return
                self._ws = ws
                self._open = True
                LOGGER.info("WebSocket connected to %s", endpoint)
                if self._listener is not None:
                    self._listener.on_open()
                writer = asyncio.create_task(self._pump(ws, outbox))
                try:
                    async for raw in ws:
                        if generation != self._generation:
                            return
                        if self._listener is not None:
                            self._listener.on_message(raw)
                finally:
                    writer.cancel()
            code = ws.close_code if ws.close_code is not None else CLOSE_ABNORMAL
            reason = ws.close_reason or ""
        except ConnectionClosed as exc:
            if exc.rcvd is not None:
                code, reason = exc.rcvd.code, exc.rcvd.reason
            else:
                reason = str(exc)
        except (OSError, InvalidURI, WebSocketException, asyncio.TimeoutError) as exc:
            LOGGER.warning("WebSocket connection to %s failed: %s", endpoint, exc)
            reason = str(exc)
        finally:
            if generation == self._generation:
                self._open = False
                self._ws = None

        if generation != self._generation:
            return
        LOGGER.info("WebSocket closed. Code: %s, Reason: %s", code, reason)
        if self._listener is not None:
            self._listener.on_close(code, reason)

    async def _pump(self, ws: ClientConnection, outbox: asyncio.Queue[str]) -> None:
        while True:
            frame = await outbox.get()
            try:
                await ws.send(frame)
            except ConnectionClosed as exc:
                LOGGER.warning("Dropping outbound frame, connection closed: %s", exc)
                return
