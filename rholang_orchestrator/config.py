"""Orchestrator configuration.

``OrchestratorConfig`` is an immutable snapshot of the user's settings,
built once per activation (or restart) from whatever settings store the
host provides. Settings arrive as a flat mapping of dotted keys
(``server.path``), as nested mappings, or as a VS Code ``settings.json``
with a ``rholang.`` prefix.

Values of the wrong type never abort activation: they are logged and
replaced by their defaults. The backend name and gRPC address are kept as
the raw strings the user typed so that later stages can report them.
"""

from __future__ import annotations

import dataclasses
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Self

from rholang_orchestrator.constants import (
    DEFAULT_GRPC_ADDRESS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_RESTART_COUNT,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_READY_ATTEMPTS,
    DEFAULT_READY_INTERVAL,
    DEFAULT_SERVER_EXECUTABLE,
    DEFAULT_VALIDATOR_EXECUTABLE,
)
from rholang_orchestrator.types.errors import ConfigurationError, ErrorCode, ErrorContext
from rholang_orchestrator.utils.logger import logger

SETTINGS_PREFIX = "rholang."


class ValidatorBackend(StrEnum):
    """Validation backends a user can request."""

    RUST = "rust"
    GRPC = "grpc"


class EffectiveBackend(StrEnum):
    """Validation strategy actually handed to the language server."""

    RUST = "rust"
    GRPC = "grpc"
    PARSER_ONLY = "parser-only"


_ENDPOINT_RE = re.compile(r"^(?P<host>\[[0-9A-Fa-f:.]+\]|[^\s:\[\]]+):(?P<port>\d{1,5})$")


@dataclass(frozen=True)
class GrpcEndpoint:
    """A validator node's gRPC address. Its health API listens on ``port + 1``."""

    host: str
    port: int

    @classmethod
    def parse(cls, text: str) -> Self:
        """Parse ``host:port``.

        Raises:
            ValueError: If the text is not ``host:port`` or the port leaves
                no room for the health-check port.
        """
        match = _ENDPOINT_RE.match(text.strip())
        if match is None:
            raise ValueError(f"Invalid gRPC address '{text}': expected host:port")
        port = int(match.group("port"))
        if not 1 <= port <= 65534:
            raise ValueError(f"Invalid gRPC address '{text}': port {port} out of range")
        return cls(host=match.group("host"), port=port)

    @property
    def health_port(self) -> int:
        return self.port + 1

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class CompletionOptions:
    """Toggles for completion-response normalization."""

    force_incomplete: bool = True
    preserve_sort_text: bool = True
    ensure_filter_text: bool = True


@dataclass(frozen=True)
class OrchestratorConfig:
    """Immutable snapshot of orchestrator settings."""

    server_path: str = DEFAULT_SERVER_EXECUTABLE
    log_level: str = DEFAULT_LOG_LEVEL
    wire_log: bool = False
    extra_args: tuple[str, ...] = ()
    max_restart_count: int = DEFAULT_MAX_RESTART_COUNT
    backend: str = ValidatorBackend.RUST.value
    grpc_address: str = DEFAULT_GRPC_ADDRESS
    rnode_path: str = DEFAULT_VALIDATOR_EXECUTABLE
    rnode_extra_args: tuple[str, ...] = ()
    auto_start: bool = True
    ready_attempts: int = DEFAULT_READY_ATTEMPTS
    ready_interval: float = DEFAULT_READY_INTERVAL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    completion: CompletionOptions = field(default_factory=CompletionOptions)

    @property
    def grpc_endpoint(self) -> GrpcEndpoint | None:
        """Parsed gRPC endpoint, or None when the address is malformed."""
        try:
            return GrpcEndpoint.parse(self.grpc_address)
        except ValueError:
            return None

    @property
    def validator_backend(self) -> ValidatorBackend | None:
        """The requested backend, or None for an unrecognized value."""
        try:
            return ValidatorBackend(self.backend.strip().lower())
        except ValueError:
            return None

    def replace(self, **changes: Any) -> OrchestratorConfig:
        """Return a new snapshot with the given fields changed."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> OrchestratorConfig:
        """Build a snapshot from a settings mapping.

        Args:
            settings: Dotted or nested keys, optionally prefixed with ``rholang.``.

        Returns:
            A config with every unset or invalid option at its default.
        """
        flat = flatten_settings(settings)
        values: dict[str, Any] = {}
        completion: dict[str, Any] = {}

        for key, raw in flat.items():
            entry = _SETTINGS.get(key)
            if entry is None:
                logger.debug(f"Ignoring unknown setting '{key}'")
                continue
            attr, coerce = entry
            try:
                value = coerce(raw)
            except (TypeError, ValueError) as exc:
                logger.warning(f"Invalid value for '{key}' ({raw!r}): {exc}; using default")
                continue
            if attr.startswith("completion."):
                completion[attr.split(".", 1)[1]] = value
            else:
                values[attr] = value

        if completion:
            values["completion"] = CompletionOptions(**completion)
        return cls(**values)


def flatten_settings(settings: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dotted keys and drop the ``rholang.`` prefix."""
    flat: dict[str, Any] = {}
    for key, value in settings.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_settings(value, prefix=f"{dotted}."))
            continue
        if dotted.startswith(SETTINGS_PREFIX):
            dotted = dotted[len(SETTINGS_PREFIX):]
        flat[dotted] = value
    return flat


def load_settings(path: str | Path) -> dict[str, Any]:
    """Read a JSON settings file.

    A missing file is treated as "no settings".

    Raises:
        ConfigurationError: If the file exists but is not a JSON object.
    """
    p = Path(path).expanduser()
    if not p.exists():
        logger.debug(f"Settings file {p} not found, using defaults")
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"Failed to read settings from {p}: {exc}",
            user_message="Settings file could not be read.",
            code=ErrorCode.SETTINGS_UNREADABLE,
            context=ErrorContext(operation="load_settings", additional_info={"path": str(p)}),
            original_error=exc,
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Settings file {p} must contain a JSON object",
            code=ErrorCode.SETTINGS_UNREADABLE,
        )
    return data


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise TypeError(f"expected a boolean, got {type(value).__name__}")


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    raise TypeError(f"expected a string, got {type(value).__name__}")


def _as_level(value: Any) -> str:
    return _as_str(value).strip().lower()


def _as_str_tuple(value: Any) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise TypeError("expected a list of strings")


def _as_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError("must not be negative")
    return value


def _as_positive_count(value: Any) -> int:
    count = _as_count(value)
    if count == 0:
        raise ValueError("must be at least 1")
    return count


def _millis_to_seconds(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    if value < 0:
        raise ValueError("must not be negative")
    return value / 1000.0


# setting key -> (config attribute, coercion)
_SETTINGS: dict[str, tuple[str, Any]] = {
    "server.path": ("server_path", _as_str),
    "server.logLevel": ("log_level", _as_level),
    "server.wireLog": ("wire_log", _as_bool),
    "server.extraArgs": ("extra_args", _as_str_tuple),
    "server.maxRestartCount": ("max_restart_count", _as_count),
    "validatorBackend": ("backend", _as_str),
    "grpcAddress": ("grpc_address", _as_str),
    "rnode.path": ("rnode_path", _as_str),
    "rnode.extraArgs": ("rnode_extra_args", _as_str_tuple),
    "rnode.autoStart": ("auto_start", _as_bool),
    "rnode.readyAttempts": ("ready_attempts", _as_positive_count),
    "rnode.readyIntervalMs": ("ready_interval", _millis_to_seconds),
    "rnode.probeTimeoutMs": ("probe_timeout", _millis_to_seconds),
    "completion.forceIncomplete": ("completion.force_incomplete", _as_bool),
    "completion.preserveSortText": ("completion.preserve_sort_text", _as_bool),
    "completion.ensureFilterText": ("completion.ensure_filter_text", _as_bool),
}
