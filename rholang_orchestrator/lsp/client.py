"""pygls client wired to the orchestrator's lifecycle events."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from pygls.lsp.client import BaseLanguageClient

from rholang_orchestrator import __version__
from rholang_orchestrator.process.lifecycle import LifecycleEvent
from rholang_orchestrator.utils.logger import logger
from rholang_orchestrator.utils.streams import pump_lines

CLIENT_NAME = "rholang-orchestrator"


class RholangLanguageClient(BaseLanguageClient):
    """Language client that reports server exits as ``LifecycleEvent``s.

    Each client belongs to one session generation; the generation travels
    with its events so the session controller can discard events from a
    client it has already replaced.

    pygls spawns the server with a piped stderr; the client drains it into
    the log for as long as the server lives.
    """

    def __init__(self, publish: Callable[[LifecycleEvent], None], generation: int) -> None:
        super().__init__(CLIENT_NAME, __version__)
        self._publish = publish
        self._generation = generation
        self._stderr_pump: asyncio.Task | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pid(self) -> int | None:
        server = getattr(self, "_server", None)
        return server.pid if server is not None else None

    async def start_io(self, cmd: str, *args: str, **kwargs: Any) -> None:
        await super().start_io(cmd, *args, **kwargs)
        server = getattr(self, "_server", None)
        if server is not None:
            self._stderr_pump = asyncio.create_task(
                pump_lines(server.stderr, "INFO", "server"),
                name=f"server-stderr-{server.pid}",
            )

    async def stop(self) -> None:
        await super().stop()
        pump, self._stderr_pump = self._stderr_pump, None
        if pump is not None:
            try:
                async with asyncio.timeout(1.0):
                    await pump
            except TimeoutError:
                pump.cancel()

    async def server_exit(self, server: asyncio.subprocess.Process) -> None:
        self._publish(
            LifecycleEvent.exited(server.pid, server.returncode, generation=self._generation)
        )

    def report_server_error(self, error: Exception, source: Any) -> None:
        logger.error(f"Language server protocol error ({type(source).__name__}): {error}")
        self._publish(LifecycleEvent.errored(error, generation=self._generation))
