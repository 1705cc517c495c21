"""Configuration validation.

Checks a config snapshot for structural problems and internal conflicts.
Validation only reports: callers decide what to do with a blocking issue.
An issue blocks either the whole session (``Scope.SESSION``) or only the
feature it concerns (``Scope.VALIDATOR``); only session-scoped blocking
issues count towards ``has_blocking_error``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from rholang_orchestrator.backend import reserved_flag_prefix
from rholang_orchestrator.config import GrpcEndpoint, OrchestratorConfig, ValidatorBackend
from rholang_orchestrator.constants import SERVER_LOG_LEVELS
from rholang_orchestrator.process.resolver import ExecutableResolver, NotFound
from rholang_orchestrator.types.errors import ResolutionError


class Scope(StrEnum):
    SESSION = "session"
    VALIDATOR = "validator"


@dataclass(frozen=True)
class ValidationIssue:
    key: str
    message: str
    blocking: bool = False
    scope: Scope = Scope.SESSION


@dataclass
class ValidationReport:
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues]

    @property
    def has_blocking_error(self) -> bool:
        return any(i.blocking and i.scope is Scope.SESSION for i in self.issues)

    def is_blocked(self, scope: Scope) -> bool:
        """Whether a blocking issue disables the feature *scope*."""
        return any(i.blocking and i.scope is scope for i in self.issues)

    def add(self, key: str, message: str, blocking: bool = False, scope: Scope = Scope.SESSION) -> None:
        self.issues.append(ValidationIssue(key, message, blocking, scope))


class ConfigValidator:
    """Reports problems in an ``OrchestratorConfig``."""

    def __init__(self, resolver: ExecutableResolver | None = None) -> None:
        self._resolver = resolver or ExecutableResolver()

    def validate(self, config: OrchestratorConfig) -> ValidationReport:
        report = ValidationReport()
        self._check_backend(config, report)
        self._check_grpc_address(config, report)
        self._check_server_path(config, report)
        self._check_log_level(config, report)
        self._check_extra_args(config, report)
        return report

    def _check_backend(self, config: OrchestratorConfig, report: ValidationReport) -> None:
        if config.validator_backend is None:
            choices = ", ".join(b.value for b in ValidatorBackend)
            report.add(
                "validatorBackend",
                f"Unknown validator backend '{config.backend}' (expected one of: {choices}); "
                "'rust' will be used",
            )

    def _check_grpc_address(self, config: OrchestratorConfig, report: ValidationReport) -> None:
        try:
            GrpcEndpoint.parse(config.grpc_address)
        except ValueError as exc:
            report.add("grpcAddress", str(exc), blocking=True, scope=Scope.VALIDATOR)

    def _check_server_path(self, config: OrchestratorConfig, report: ValidationReport) -> None:
        # The default bare name is looked up at activation; only an explicitly
        # configured path is checked here.
        if self._resolver.is_well_known(config.server_path):
            return
        try:
            resolution = self._resolver.resolve(config.server_path)
        except ResolutionError as exc:
            report.add("server.path", str(exc), blocking=True)
            return
        if isinstance(resolution, NotFound):
            report.add(
                "server.path",
                f"Language server '{config.server_path}' does not exist or is not executable",
                blocking=True,
            )

    def _check_log_level(self, config: OrchestratorConfig, report: ValidationReport) -> None:
        if config.log_level.lower() not in SERVER_LOG_LEVELS:
            report.add(
                "server.logLevel",
                f"Unknown log level '{config.log_level}' (expected one of: {', '.join(SERVER_LOG_LEVELS)})",
            )

    def _check_extra_args(self, config: OrchestratorConfig, report: ValidationReport) -> None:
        for extra in config.extra_args:
            flag = reserved_flag_prefix(extra)
            if flag is not None:
                report.add(
                    "server.extraArgs",
                    f"Extra argument '{extra}' conflicts with built-in flag '{flag}'; "
                    "both will be passed, built-in first",
                )
