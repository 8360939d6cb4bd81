"""Named registry of attached extensions with sequential logical ids."""

from __future__ import annotations

import logging

from pardalote.core.errors import UsageError
from pardalote.core.model import ExtensionInfo
from pardalote.extensions.base import Extension, ExtensionHost

LOGGER = logging.getLogger(__name__)


class ExtensionRegistry:
    def __init__(self, host: ExtensionHost) -> None:
        self._host = host
        self._extensions: dict[str, Extension] = {}
        self._next_logical_id = 0

    def __len__(self) -> int:
        return len(self._extensions)

    def __contains__(self, name: object) -> bool:
        return name in self._extensions

    def add(self, name: str, extension: Extension) -> Extension:
        if name in self._extensions:
            raise UsageError(f"An extension named '{name}' is already attached")

        # Ids are consumed even if bind fails, so they are never reused.
        logical_id = self._next_logical_id
        self._next_logical_id += 1
        extension.bind(self._host, logical_id)
        self._extensions[name] = extension

        LOGGER.info(
            "Extension '%s' added with logical ID %s (device type: %s)",
            name,
            logical_id,
            extension.device_type,
        )
        return extension

    def get(self, name: str) -> Extension:
        extension = self._extensions.get(name)
        if extension is None:
            available = ", ".join(sorted(self._extensions)) or "<none>"
            raise UsageError(f"No extension named '{name}'. Available: {available}")
        return extension

    def find(self, device_type: int, logical_id: int) -> Extension | None:
        for extension in self._extensions.values():
            if extension.device_type == device_type and extension.logical_id == logical_id:
                return extension
        return None

    def list(self) -> list[ExtensionInfo]:
        return [
            ExtensionInfo(
                name=name,
                device_type=extension.device_type,
                logical_id=extension.logical_id if extension.logical_id is not None else -1,
                type_name=type(extension).__name__,
            )
            for name, extension in self._extensions.items()
        ]
