"""
Orchestrator type definitions.

This module exports the structured error types shared by every component.
"""

from .errors import (
    ConfigurationError,
    ErrorCode,
    ErrorContext,
    ErrorSeverity,
    HandshakeError,
    OrchestratorError,
    RecoveryAction,
    ResolutionError,
    RestartExhaustedError,
    SpawnError,
    ValidatorAlreadyRunningError,
)

__all__ = [
    "ErrorCode",
    "ErrorSeverity",
    "RecoveryAction",
    "ErrorContext",
    "OrchestratorError",
    "ResolutionError",
    "SpawnError",
    "ValidatorAlreadyRunningError",
    "HandshakeError",
    "RestartExhaustedError",
    "ConfigurationError",
]
