"""RNode validator process management.

The manager spawns at most one validator at a time, pumps its output into
the log, and records whether *this* orchestrator started it. Only owned
processes are ever terminated, so a node the user launched before
activation survives teardown.

When the process exits (crash, external kill, or our own stop) the watcher
task marks the handle EXITED, clears ownership, forgets the handle and
publishes a ``LifecycleEvent`` on ``events``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

from rholang_orchestrator.constants import DEFAULT_SHUTDOWN_TIMEOUT
from rholang_orchestrator.process.lifecycle import LifecycleEvent, ProcessState
from rholang_orchestrator.types.errors import (
    ErrorContext,
    SpawnError,
    ValidatorAlreadyRunningError,
)
from rholang_orchestrator.utils.logger import logger
from rholang_orchestrator.utils.streams import pump_lines
from rholang_orchestrator.utils.subprocess_util import quote_command, subprocess_kwargs


@dataclass
class ProcessHandle:
    """An external process under management."""

    pid: int | None = None
    state: ProcessState = ProcessState.NOT_STARTED
    owned: bool = False
    returncode: int | None = None
    signal: int | None = None
    process: asyncio.subprocess.Process | None = field(default=None, repr=False, compare=False)
    _watcher: asyncio.Task | None = field(default=None, repr=False, compare=False)

    @property
    def running(self) -> bool:
        return self.state is ProcessState.RUNNING

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "state": self.state.value,
            "owned": self.owned,
            "returncode": self.returncode,
            "signal": self.signal,
        }


class ValidatorProcessManager:
    """Spawns, watches, and terminates the optional validator node."""

    def __init__(self, stop_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        self._stop_timeout = stop_timeout
        self._handle: ProcessHandle | None = None
        self._events: asyncio.Queue[LifecycleEvent] = asyncio.Queue()

    @property
    def handle(self) -> ProcessHandle | None:
        return self._handle

    @property
    def is_running(self) -> bool:
        return self._handle is not None and self._handle.running

    @property
    def events(self) -> asyncio.Queue[LifecycleEvent]:
        return self._events

    def drain_events(self) -> list[LifecycleEvent]:
        """Return every event published since the last drain."""
        drained = []
        while not self._events.empty():
            drained.append(self._events.get_nowait())
        return drained

    async def start(self, path: str, args: Sequence[str] = ()) -> ProcessHandle:
        """Spawn the validator.

        Raises:
            ValidatorAlreadyRunningError: If a previously spawned validator is live.
            SpawnError: If the OS refuses to start the process.
        """
        if self.is_running:
            raise ValidatorAlreadyRunningError(self._handle.pid if self._handle else None)

        logger.info(f"Starting validator: {quote_command(path, args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                path,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **subprocess_kwargs(),
            )
        except OSError as exc:
            self._events.put_nowait(LifecycleEvent.errored(exc))
            logger.error(f"Failed to start validator {path}: {exc}")
            raise SpawnError(
                f"Failed to spawn {path}: {exc}",
                user_message="The RNode validator could not be started.",
                context=ErrorContext(operation="spawn", executable=path, component="validator"),
                original_error=exc,
            ) from exc

        handle = ProcessHandle(
            pid=process.pid,
            state=ProcessState.RUNNING,
            owned=True,
            process=process,
        )
        handle._watcher = asyncio.create_task(
            self._watch(handle), name=f"rnode-watch-{process.pid}"
        )
        self._handle = handle
        logger.info(f"Validator started with pid {process.pid}")
        return handle

    async def stop(self, handle: ProcessHandle | None = None) -> bool:
        """Terminate *handle* (the current handle by default) if we own it.

        Returns:
            True if a termination signal was sent.
        """
        target = handle if handle is not None else self._handle
        if target is None:
            return False
        if not target.owned:
            logger.debug(f"Not stopping validator {target.pid}: not started by this session")
            return False
        if not target.running or target.process is None:
            return False

        process = target.process
        logger.info(f"Stopping validator {target.pid}")
        try:
            process.terminate()
        except ProcessLookupError:
            logger.debug(f"Validator {target.pid} already gone")
        else:
            try:
                async with asyncio.timeout(self._stop_timeout):
                    await process.wait()
            except TimeoutError:
                logger.warning(
                    f"Validator {target.pid} ignored SIGTERM for {self._stop_timeout}s, killing"
                )
                process.kill()
                await process.wait()

        if target._watcher is not None:
            await target._watcher
        return True

    async def _watch(self, handle: ProcessHandle) -> None:
        process = handle.process
        if process is None:
            return
        pumps = [
            asyncio.create_task(pump_lines(process.stdout, "INFO", "rnode")),
            asyncio.create_task(pump_lines(process.stderr, "WARNING", "rnode")),
        ]
        returncode = await process.wait()
        _, pending = await asyncio.wait(pumps, timeout=1.0)
        for task in pending:
            task.cancel()

        event = LifecycleEvent.exited(handle.pid, returncode)
        handle.state = ProcessState.EXITED
        handle.returncode = returncode
        handle.signal = event.signal
        handle.owned = False
        if self._handle is handle:
            self._handle = None
        self._events.put_nowait(event)
        logger.info(f"Validator {handle.pid} {event.describe()}")

