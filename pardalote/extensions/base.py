"""Common base for peripheral extensions attached to a session."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import ClassVar, Protocol

from pardalote.core.errors import UsageError
from pardalote.core.model import CommandDescriptor, DecodedMessage, Number
from pardalote.core.timers import Scheduler


class ExtensionHost(Protocol):
    """What an extension needs from the session it is attached to."""

    @property
    def scheduler(self) -> Scheduler: ...

    @property
    def default_read_interval(self) -> float: ...

    def send(self, items: CommandDescriptor | Iterable[CommandDescriptor]) -> None: ...


class Extension(ABC):
    """A peripheral addressed by device type and a session-assigned logical id.

    Commands go out as ``{id: device_type, action, params: [logical_id, ...]}``;
    inbound readings arrive through :meth:`handle_message`.
    """

    device_type: ClassVar[int]

    def __init__(self) -> None:
        self._host: ExtensionHost | None = None
        self.logical_id: int | None = None

    def bind(self, host: ExtensionHost, logical_id: int) -> None:
        if self._host is not None:
            raise UsageError(f"{type(self).__name__} is already attached with logical ID {self.logical_id}")
        self._host = host
        self.logical_id = logical_id

    @property
    def host(self) -> ExtensionHost:
        if self._host is None:
            raise UsageError(f"{type(self).__name__} must be added to a session before use")
        return self._host

    def command(self, action: int, *params: Number) -> CommandDescriptor:
        if self.logical_id is None:
            raise UsageError(f"{type(self).__name__} has no logical ID; add it to a session first")
        return CommandDescriptor(self.device_type, action, (self.logical_id, *params))

    def send(self, action: int, *params: Number) -> None:
        self.host.send(self.command(action, *params))

    @abstractmethod
    def handle_message(self, message: DecodedMessage) -> None:
        """Apply a reading routed to this extension."""
