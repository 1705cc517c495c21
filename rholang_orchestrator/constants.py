"""Shared constants and helpers for the orchestrator.

Centralizes executable names, network defaults, the readiness-wait policy,
and timezone-aware datetime helpers.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime.

    Used as a ``default_factory`` for timestamps on probe results,
    lifecycle events and error contexts.
    """
    return datetime.now(timezone.utc)


# Bare executable names resolved through the search path.
DEFAULT_SERVER_EXECUTABLE: str = "rholang-language-server"
DEFAULT_VALIDATOR_EXECUTABLE: str = "rnode"

# RNode exposes internal gRPC on 40402 and its HTTP API on the next port.
DEFAULT_GRPC_ADDRESS: str = "localhost:40402"
HEALTH_CHECK_PATH: str = "/status"

# Arguments that put RNode into single-node mode.
VALIDATOR_STANDALONE_ARGS: tuple[str, ...] = ("run", "--standalone")

# Probe / readiness-wait policy (seconds).
DEFAULT_PROBE_TIMEOUT: float = 2.0
DEFAULT_READY_ATTEMPTS: int = 30
DEFAULT_READY_INTERVAL: float = 1.0

# Session policy.
DEFAULT_MAX_RESTART_COUNT: int = 5
DEFAULT_HANDSHAKE_TIMEOUT: float = 30.0
DEFAULT_SHUTDOWN_TIMEOUT: float = 5.0
DEFAULT_REQUEST_TIMEOUT: float = 10.0

DEFAULT_LOG_LEVEL: str = "info"
SERVER_LOG_LEVELS: tuple[str, ...] = ("error", "warn", "info", "debug", "trace")

# Flags the orchestrator always emits itself. User extras starting with one
# of these are reported as conflicts but still passed through.
RESERVED_SERVER_FLAGS: tuple[str, ...] = (
    "--no-color",
    "--client-process-id",
    "--log-level",
    "--wire-log",
    "--validator-backend",
    "--no-rnode",
)

# Extra environment for the language server process.
SERVER_ENVIRONMENT: dict[str, str] = {"RUST_BACKTRACE": "1"}
