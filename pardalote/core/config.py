"""Session configuration loading and validation from layered YAML sources."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from pardalote.core.errors import ConfigLoadError, ConfigValidationError

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class SessionConfig:
    port: int = 81
    path: str = "/"
    open_timeout_s: float = 10.0
    max_reconnect_attempts: int = 10
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_factor: float = 1.5
    write_interval_ms: float = 100
    read_interval_ms: float = 200
    protocol_version: int = 1
    requeue_on_failure: bool = False

    def endpoint_for(self, host: str) -> str:
        return f"ws://{host}:{self.port}{self.path}"


def load_schema_validator(name: str) -> Any:
    schema_text = resources.files("pardalote.schemas").joinpath(name).read_text(encoding="utf-8")
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "pardalote/config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _validate(doc: dict[str, Any], source: str) -> None:
    validator = load_schema_validator("config.schema.json")
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def build_config(doc: dict[str, Any]) -> SessionConfig:
    connection = doc.get("connection", {})
    reconnect = doc.get("reconnect", {})
    intervals = doc.get("intervals", {})
    outbound = doc.get("outbound", {})
    defaults = SessionConfig()

    config = SessionConfig(
        port=int(connection.get("port", defaults.port)),
        path=str(connection.get("path", defaults.path)),
        open_timeout_s=float(connection.get("open_timeout_s", defaults.open_timeout_s)),
        max_reconnect_attempts=int(reconnect.get("max_attempts", defaults.max_reconnect_attempts)),
        base_delay_ms=float(reconnect.get("base_delay_ms", defaults.base_delay_ms)),
        max_delay_ms=float(reconnect.get("max_delay_ms", defaults.max_delay_ms)),
        backoff_factor=float(reconnect.get("backoff_factor", defaults.backoff_factor)),
        write_interval_ms=float(intervals.get("write_ms", defaults.write_interval_ms)),
        read_interval_ms=float(intervals.get("read_ms", defaults.read_interval_ms)),
        protocol_version=int(outbound.get("protocol_version", defaults.protocol_version)),
        requeue_on_failure=bool(outbound.get("requeue_on_failure", defaults.requeue_on_failure)),
    )
    if config.max_delay_ms < config.base_delay_ms:
        raise ConfigValidationError(
            f"reconnect.max_delay_ms ({config.max_delay_ms}) must not be below "
            f"reconnect.base_delay_ms ({config.base_delay_ms})"
        )
    return config


def load_config(path: str | Path | None = None) -> SessionConfig:
    """Load packaged defaults, then the user config file, then ``path`` if given."""
    doc = _read_yaml(resources.files("pardalote").joinpath("defaults.yaml"))
    sources = ["packaged defaults"]

    user_path = _config_path()
    if user_path.is_file():
        doc = _merge(doc, _read_yaml(user_path))
        sources.append(str(user_path))

    if path is not None:
        explicit = Path(path)
        if not explicit.is_file():
            raise ConfigLoadError(f"Config file {explicit} does not exist")
        doc = _merge(doc, _read_yaml(explicit))
        sources.append(str(explicit))

    _validate(doc, " + ".join(sources))
    config = build_config(doc)
    LOGGER.debug("Loaded session config from %s: %s", ", ".join(sources), config)
    return config
