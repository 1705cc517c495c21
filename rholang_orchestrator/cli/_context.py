"""CLI orchestrator context.

CLI commands that need an ``Orchestrator`` use orchestrator_scope(config)
instead of instantiating one directly. This guarantees that any validator
node or language server started by the command is torn down on exit.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator
from pathlib import Path

from rholang_orchestrator.config import OrchestratorConfig, load_settings
from rholang_orchestrator.orchestrator import Orchestrator
from rholang_orchestrator.utils.logger import logger, with_activation_id


def config_from_file(path: str | None) -> OrchestratorConfig:
    """Load a config snapshot from a JSON settings file (defaults if None)."""
    if path is None:
        return OrchestratorConfig()
    return OrchestratorConfig.from_settings(load_settings(Path(path)))


@contextlib.asynccontextmanager
async def orchestrator_scope(config: OrchestratorConfig) -> AsyncGenerator[Orchestrator, None]:
    """Async context manager providing an Orchestrator with teardown on exit."""
    with with_activation_id():
        orchestrator = Orchestrator(config, root_uri=Path.cwd().as_uri())
        try:
            yield orchestrator
        finally:
            try:
                await orchestrator.deactivate()
            except Exception:
                logger.opt(exception=True).debug("Error during CLI orchestrator teardown")
