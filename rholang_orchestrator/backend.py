"""Validation backend selection.

Decides, once per session start, which validator the language server
should use, and assembles the server's argument vector.

Policy:
    rust     -> ``--validator-backend rust`` (always explicit)
    grpc     -> probe ``host:(port+1)/status``; if down and auto-start is
                enabled, spawn RNode and wait for it; if still down, fall
                back to parser-only validation (``--no-rnode``) with a
                single warning
    unknown  -> warn, then behave as rust

The selector never waits longer than the readiness budget, so server
startup is never blocked indefinitely by a missing validator.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from rholang_orchestrator.config import (
    EffectiveBackend,
    GrpcEndpoint,
    OrchestratorConfig,
    ValidatorBackend,
)
from rholang_orchestrator.constants import RESERVED_SERVER_FLAGS, VALIDATOR_STANDALONE_ARGS
from rholang_orchestrator.health import ReadinessWaiter
from rholang_orchestrator.process.resolver import ExecutableResolver, NotFound
from rholang_orchestrator.process.validator import ValidatorProcessManager
from rholang_orchestrator.protocols import Prober
from rholang_orchestrator.types.errors import (
    ResolutionError,
    SpawnError,
    ValidatorAlreadyRunningError,
)
from rholang_orchestrator.utils.logger import logger


@dataclass(frozen=True)
class BackendDecision:
    """Resolved validation strategy for one session."""

    backend: EffectiveBackend
    args: tuple[str, ...]
    available: bool
    endpoint: GrpcEndpoint | None = None
    warnings: tuple[str, ...] = ()

    @property
    def is_fallback(self) -> bool:
        return self.backend is EffectiveBackend.PARSER_ONLY

    def to_dict(self) -> dict:
        return {
            "backend": self.backend.value,
            "args": list(self.args),
            "available": self.available,
            "endpoint": str(self.endpoint) if self.endpoint else None,
            "warnings": list(self.warnings),
        }


def rust_decision(warnings: Sequence[str] = ()) -> BackendDecision:
    return BackendDecision(
        backend=EffectiveBackend.RUST,
        args=("--validator-backend", ValidatorBackend.RUST.value),
        available=True,
        warnings=tuple(warnings),
    )


def grpc_decision(endpoint: GrpcEndpoint) -> BackendDecision:
    return BackendDecision(
        backend=EffectiveBackend.GRPC,
        args=("--validator-backend", f"grpc:{endpoint}"),
        available=True,
        endpoint=endpoint,
    )


def parser_only_decision(warning: str, endpoint: GrpcEndpoint | None = None) -> BackendDecision:
    return BackendDecision(
        backend=EffectiveBackend.PARSER_ONLY,
        args=("--no-rnode",),
        available=False,
        endpoint=endpoint,
        warnings=(warning,),
    )


class BackendSelector:
    """Chooses the effective validation backend."""

    def __init__(
        self,
        resolver: ExecutableResolver,
        probe: Prober,
        waiter: ReadinessWaiter,
        validator_manager: ValidatorProcessManager,
    ) -> None:
        self._resolver = resolver
        self._probe = probe
        self._waiter = waiter
        self._validator = validator_manager

    async def decide(
        self,
        config: OrchestratorConfig,
        cancel: asyncio.Event | None = None,
    ) -> BackendDecision:
        """Compute the backend decision for *config*.

        Warnings are both logged and carried on the returned decision.
        """
        requested = config.validator_backend
        if requested is None:
            message = f"Unknown validator backend '{config.backend}', defaulting to 'rust'"
            logger.warning(message)
            return rust_decision([message])
        if requested is ValidatorBackend.RUST:
            return rust_decision()
        return await self._decide_grpc(config, cancel)

    async def _decide_grpc(
        self,
        config: OrchestratorConfig,
        cancel: asyncio.Event | None,
    ) -> BackendDecision:
        endpoint = config.grpc_endpoint
        if endpoint is None:
            return self._fallback(
                f"Invalid gRPC address '{config.grpc_address}' (expected host:port); "
                "using parser-only validation"
            )

        host, health_port = endpoint.host, endpoint.health_port
        if (await self._probe.probe(host, health_port)).reachable:
            logger.info(f"RNode is available at {endpoint}")
            return grpc_decision(endpoint)

        if not config.auto_start:
            return self._fallback(
                f"RNode not reachable at {host}:{health_port} and auto-start is disabled; "
                "using parser-only validation",
                endpoint,
            )

        if not self._validator.is_running:
            failure = await self._spawn_validator(config)
            if failure is not None:
                return self._fallback(failure, endpoint)
        else:
            logger.info("Validator started earlier is still initializing, waiting for it")

        if await self._waiter.wait_until_ready(host, health_port, cancel=cancel):
            logger.info(f"RNode became ready at {endpoint}")
            return grpc_decision(endpoint)

        return self._fallback(
            f"RNode did not become ready at {host}:{health_port}; using parser-only validation",
            endpoint,
        )

    async def _spawn_validator(self, config: OrchestratorConfig) -> str | None:
        """Resolve and spawn RNode. Returns a warning message on failure."""
        try:
            resolution = self._resolver.resolve(config.rnode_path)
        except ResolutionError as exc:
            return f"Could not resolve RNode executable '{config.rnode_path}': {exc}"
        if isinstance(resolution, NotFound):
            return (
                f"RNode executable '{config.rnode_path}' not found; "
                "using parser-only validation"
            )

        try:
            await self._validator.start(
                resolution.path, [*VALIDATOR_STANDALONE_ARGS, *config.rnode_extra_args]
            )
        except ValidatorAlreadyRunningError:
            logger.debug("Validator already running, not spawning another")
        except SpawnError as exc:
            return f"Failed to start RNode: {exc}; using parser-only validation"
        return None

    @staticmethod
    def _fallback(message: str, endpoint: GrpcEndpoint | None = None) -> BackendDecision:
        logger.warning(message)
        return parser_only_decision(message, endpoint)


def build_server_args(
    config: OrchestratorConfig,
    decision: BackendDecision,
    client_pid: int,
) -> list[str]:
    """Assemble the language server's argument vector.

    Built-in flags come first, then the decision's validator flags, then the
    user's extra arguments verbatim. Extras that repeat a built-in flag are
    kept; the conflict is only logged.
    """
    args = [
        "--no-color",
        "--client-process-id",
        str(client_pid),
        "--log-level",
        config.log_level.lower(),
    ]
    if config.wire_log:
        args.append("--wire-log")
    args.extend(decision.args)

    for extra in config.extra_args:
        flag = reserved_flag_prefix(extra)
        if flag is not None:
            logger.warning(f"Extra argument '{extra}' duplicates built-in flag '{flag}'")
    args.extend(config.extra_args)
    return args


def reserved_flag_prefix(arg: str) -> str | None:
    """Return the built-in flag *arg* starts with, if any."""
    for flag in RESERVED_SERVER_FLAGS:
        if arg.startswith(flag):
            return flag
    return None
