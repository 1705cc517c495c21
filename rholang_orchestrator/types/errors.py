"""
Structured error handling for the orchestrator.

Every failure kind that is allowed to propagate carries an internal code,
a severity, a user-facing message and optional recovery actions, so the
CLI and any embedding editor can render it consistently.

Probe failures have no error type: an unreachable validator is
represented as ``reachable=False``, never as an exception.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from rholang_orchestrator.constants import utcnow


class ErrorCode(IntEnum):
    """Internal error codes for categorization."""

    # Executable resolution (1000-1999)
    EXECUTABLE_NOT_FOUND = 1001
    EXECUTABLE_NOT_RUNNABLE = 1002
    RESOLUTION_IO_FAILED = 1003

    # Process lifecycle (2000-2999)
    SPAWN_FAILED = 2001
    VALIDATOR_ALREADY_RUNNING = 2002

    # Language-server session (3000-3999)
    HANDSHAKE_FAILED = 3001
    RESTART_EXHAUSTED = 3002

    # Configuration (4000-4999)
    INVALID_CONFIG = 4001
    SETTINGS_UNREADABLE = 4002


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class RecoveryAction:
    """Suggested action to recover from an error."""

    description: str
    command: str | None = None
    automated: bool = False


@dataclass
class ErrorContext:
    """Context information for an error."""

    operation: str | None = None
    executable: str | None = None
    component: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    additional_info: dict[str, Any] = field(default_factory=dict)


class OrchestratorError(Exception):
    """Base error class for the orchestrator."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        user_message: str,
        severity: str = ErrorSeverity.MEDIUM,
        context: ErrorContext | None = None,
        recovery_actions: list[RecoveryAction] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.severity = severity
        self.user_message = user_message
        self.context = context or ErrorContext()
        self.recovery_actions = recovery_actions or []
        self.original_error = original_error
        self.context.timestamp = utcnow()

    def get_formatted_message(self) -> str:
        """Get a formatted error message for display to users."""
        parts = [
            f"[Error] {self.user_message}",
            f"   Code: {self.code.value}",
        ]

        if self.context.operation:
            parts.append(f"   Operation: {self.context.operation}")
        if self.context.executable:
            parts.append(f"   Executable: {self.context.executable}")
        if self.context.component:
            parts.append(f"   Component: {self.context.component}")

        if self.recovery_actions:
            parts.append("   Suggested actions:")
            for action in self.recovery_actions:
                parts.append(f"   - {action.description}")
                if action.command:
                    parts.append(f"      Run: {action.command}")

        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "name": self.__class__.__name__,
            "code": self.code.value,
            "message": str(self),
            "user_message": self.user_message,
            "severity": self.severity,
            "context": {
                "operation": self.context.operation,
                "executable": self.context.executable,
                "component": self.context.component,
                "timestamp": self.context.timestamp.isoformat(),
                "additional_info": self.context.additional_info,
            },
            "recovery_actions": [
                {"description": a.description, "command": a.command, "automated": a.automated}
                for a in self.recovery_actions
            ],
            "original_error": str(self.original_error) if self.original_error else None,
        }


class ResolutionError(OrchestratorError):
    """An executable could not be located or inspected."""

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        code: ErrorCode = ErrorCode.EXECUTABLE_NOT_FOUND,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            user_message=user_message or "Executable could not be resolved.",
            severity=ErrorSeverity.HIGH,
            context=context,
            recovery_actions=[
                RecoveryAction(
                    description="Install the executable or set an explicit path in the settings",
                ),
            ],
            original_error=original_error,
        )


class SpawnError(OrchestratorError):
    """The operating system refused to start a process."""

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.SPAWN_FAILED,
            message=message,
            user_message=user_message or "Process could not be started.",
            severity=ErrorSeverity.HIGH,
            context=context,
            original_error=original_error,
        )


class ValidatorAlreadyRunningError(OrchestratorError):
    """A second validator spawn was requested while one is still live."""

    def __init__(self, pid: int | None) -> None:
        super().__init__(
            code=ErrorCode.VALIDATOR_ALREADY_RUNNING,
            message=f"Validator process {pid} is still running",
            user_message="A validator node started by this session is already running.",
            severity=ErrorSeverity.LOW,
            context=ErrorContext(component="validator", additional_info={"pid": pid}),
        )


class HandshakeError(OrchestratorError):
    """The language-server transport failed to initialize."""

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.HANDSHAKE_FAILED,
            message=message,
            user_message=user_message or "Language server failed to initialize.",
            severity=ErrorSeverity.HIGH,
            context=context,
            recovery_actions=[
                RecoveryAction(
                    description="Check the language server log, then restart the server",
                    command="rholang-orchestrator run --log-level debug",
                ),
            ],
            original_error=original_error,
        )


class RestartExhaustedError(OrchestratorError):
    """Automatic restarts exceeded the configured budget."""

    def __init__(self, restart_count: int, max_restart_count: int) -> None:
        super().__init__(
            code=ErrorCode.RESTART_EXHAUSTED,
            message=(
                f"Restart budget exhausted after {restart_count} attempts "
                f"(max {max_restart_count})"
            ),
            user_message="The language server kept crashing and was stopped.",
            severity=ErrorSeverity.CRITICAL,
            context=ErrorContext(
                component="session",
                additional_info={
                    "restart_count": restart_count,
                    "max_restart_count": max_restart_count,
                },
            ),
            recovery_actions=[
                RecoveryAction(description="Restart the language server manually"),
            ],
        )


class ConfigurationError(OrchestratorError):
    """Error related to configuration issues."""

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        code: ErrorCode = ErrorCode.INVALID_CONFIG,
        context: ErrorContext | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            user_message=user_message or "Configuration error occurred.",
            severity=ErrorSeverity.MEDIUM,
            context=context,
            original_error=original_error,
        )
