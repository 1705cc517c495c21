"""Activation-scoped orchestration.

One ``Orchestrator`` exists per activation. It owns the validator process
manager, the backend selector and the language-server session, and tears
all of them down explicitly in ``deactivate()``. Nothing here is a
module-level singleton.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

from lsprotocol.types import CompletionList, CompletionParams

from rholang_orchestrator.backend import BackendDecision, BackendSelector, build_server_args
from rholang_orchestrator.config import OrchestratorConfig
from rholang_orchestrator.config_validator import ConfigValidator, ValidationReport
from rholang_orchestrator.constants import SERVER_ENVIRONMENT
from rholang_orchestrator.health import AvailabilityProbe, ReadinessWaiter
from rholang_orchestrator.lsp.completion import ResponseNormalizer
from rholang_orchestrator.lsp.session import ClientFactory, LaunchSpec, SessionController
from rholang_orchestrator.process.resolver import ExecutableResolver, NotFound
from rholang_orchestrator.process.validator import ValidatorProcessManager
from rholang_orchestrator.protocols import Prober
from rholang_orchestrator.types.errors import ErrorCode, ErrorContext, ResolutionError
from rholang_orchestrator.utils.logger import logger


class Orchestrator:
    """Coordinates the language server and the optional RNode validator.

    Usage:
        orchestrator = Orchestrator(OrchestratorConfig.from_settings(settings))
        await orchestrator.activate()
        ...
        await orchestrator.restart()      # user-initiated
        ...
        await orchestrator.deactivate()
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        *,
        resolver: ExecutableResolver | None = None,
        probe: Prober | None = None,
        waiter: ReadinessWaiter | None = None,
        validator_manager: ValidatorProcessManager | None = None,
        client_factory: ClientFactory | None = None,
        root_uri: str | None = None,
    ) -> None:
        self._config = config
        self._resolver = resolver or ExecutableResolver()
        self._probe = probe or AvailabilityProbe(timeout=config.probe_timeout)
        self._waiter = waiter or ReadinessWaiter(
            self._probe,
            max_attempts=config.ready_attempts,
            interval=config.ready_interval,
        )
        self._validator = validator_manager or ValidatorProcessManager()
        self._selector = BackendSelector(self._resolver, self._probe, self._waiter, self._validator)
        self._session = SessionController(
            self._prepare_launch,
            max_restart_count=config.max_restart_count,
            client_factory=client_factory,
            normalizer=ResponseNormalizer(config.completion),
            root_uri=root_uri,
        )
        self._cancel = asyncio.Event()
        self._server_path: str | None = None
        self._decision: BackendDecision | None = None
        self._report: ValidationReport | None = None

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def session(self) -> SessionController:
        return self._session

    @property
    def validator(self) -> ValidatorProcessManager:
        return self._validator

    @property
    def decision(self) -> BackendDecision | None:
        """Backend decision of the most recent (re)start."""
        return self._decision

    @property
    def validation_report(self) -> ValidationReport | None:
        return self._report

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def activate(self) -> ValidationReport:
        """Validate the config, locate the server and start the session.

        Raises:
            ResolutionError: If the language server executable is missing.
                This is the only condition that prevents activation.
            SpawnError, HandshakeError: If the server fails to come up.
        """
        self._cancel.clear()
        report = self.check_config()
        self._server_path = self.resolve_server()
        await self._session.start()
        logger.info("Rholang orchestrator activated")
        return report

    async def restart(self) -> bool:
        """User-initiated restart. Resets the automatic restart budget."""
        self._cancel.clear()
        if self._server_path is None:
            self._server_path = self.resolve_server()
        return await self._session.restart(explicit=True)

    async def deactivate(self) -> None:
        """Tear everything down. Safe to call repeatedly."""
        self._cancel.set()
        await self._session.aclose()
        await self._validator.stop()
        logger.info("Rholang orchestrator deactivated")

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    def check_config(self) -> ValidationReport:
        """Run the config validator and log each issue."""
        report = ConfigValidator(self._resolver).validate(self._config)
        for issue in report.issues:
            if issue.blocking:
                logger.error(f"{issue.key}: {issue.message}")
            else:
                logger.warning(f"{issue.key}: {issue.message}")
        self._report = report
        return report

    def resolve_server(self) -> str:
        """Locate the language server executable.

        Raises:
            ResolutionError: If it cannot be found or is not executable.
        """
        candidate = self._config.server_path
        resolution = self._resolver.resolve(candidate)
        if isinstance(resolution, NotFound):
            context = ErrorContext(operation="resolve", executable=candidate, component="session")
            if not self._resolver.is_well_known(candidate) and os.path.exists(os.path.expanduser(candidate)):
                logger.error(f"Rholang language server is not executable: {candidate}")
                raise ResolutionError(
                    f"Language server path '{candidate}' exists but is not an executable file",
                    user_message=f"The Rholang language server at {candidate} is not executable.",
                    code=ErrorCode.EXECUTABLE_NOT_RUNNABLE,
                    context=context,
                )
            logger.error(f"Failed to find rholang language server: {candidate}")
            raise ResolutionError(
                f"Language server executable '{candidate}' not found",
                user_message=f"Could not find the Rholang language server ({candidate}).",
                context=context,
            )
        return resolution.path

    async def decide_backend(self) -> BackendDecision:
        """Run the backend decision without starting the server."""
        self._decision = await self._selector.decide(self._config, cancel=self._cancel)
        return self._decision

    async def _prepare_launch(self) -> LaunchSpec:
        if self._server_path is None:
            self._server_path = self.resolve_server()
        decision = await self.decide_backend()
        args = build_server_args(self._config, decision, client_pid=os.getpid())
        env = {**os.environ, **SERVER_ENVIRONMENT}
        return LaunchSpec(command=self._server_path, args=tuple(args), env=env)

    # -----------------------------------------------------------------------
    # Requests and status
    # -----------------------------------------------------------------------

    async def complete(self, params: CompletionParams) -> CompletionList:
        return await self._session.complete(params)

    def get_status(self) -> dict[str, Any]:
        """Snapshot for status indicators and the CLI."""
        handle = self._validator.handle
        launch = self._session.launch
        return {
            "session": {
                "state": self._session.state.value,
                "restart_count": self._session.restart_count,
                "max_restart_count": self._session.max_restart_count,
                "command": launch.describe() if launch else None,
            },
            "backend": self._decision.to_dict() if self._decision else None,
            "validator": handle.to_dict() if handle else None,
            "config_warnings": self._report.warnings if self._report else [],
        }
