"""Language-server session lifecycle.

States::

    STOPPED -> STARTING -> RUNNING
    RUNNING -> RESTARTING -> RUNNING
    RESTARTING -> PERMANENTLY_STOPPED   (automatic restart budget exceeded)

start/stop/restart are serialized through one lock. Server exits arrive as
``LifecycleEvent``s on a queue; a supervisor task consumes them and turns
an unexpected exit of the *current* client into an automatic restart.
Events from clients that were already replaced or stopped are ignored.

Explicit restarts reset the restart counter; automatic ones increment it.
Once the counter exceeds ``max_restart_count`` the session is
PERMANENTLY_STOPPED and only an explicit restart brings it back.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from lsprotocol.types import (
    ClientCapabilities,
    CompletionList,
    CompletionParams,
    InitializedParams,
    InitializeParams,
    InitializeParamsClientInfoType,
)

from rholang_orchestrator import __version__
from rholang_orchestrator.constants import (
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_MAX_RESTART_COUNT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SHUTDOWN_TIMEOUT,
)
from rholang_orchestrator.lsp.client import CLIENT_NAME, RholangLanguageClient
from rholang_orchestrator.lsp.completion import ResponseNormalizer
from rholang_orchestrator.process.lifecycle import LifecycleEvent, LifecycleEventKind
from rholang_orchestrator.protocols import LanguageClient
from rholang_orchestrator.types.errors import (
    ErrorContext,
    HandshakeError,
    OrchestratorError,
    RestartExhaustedError,
    SpawnError,
)
from rholang_orchestrator.utils.logger import logger
from rholang_orchestrator.utils.subprocess_util import quote_command

ClientFactory = Callable[[Callable[[LifecycleEvent], None], int], LanguageClient]


class SessionState(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    RESTARTING = "restarting"
    PERMANENTLY_STOPPED = "permanently_stopped"


@dataclass(frozen=True)
class LaunchSpec:
    """Everything needed to spawn the language server."""

    command: str
    args: tuple[str, ...]
    env: dict[str, str] | None = field(default=None, repr=False)

    def describe(self) -> str:
        return quote_command(self.command, self.args)


class SessionController:
    """Owns the language-server client."""

    def __init__(
        self,
        prepare_launch: Callable[[], Awaitable[LaunchSpec]],
        *,
        max_restart_count: int = DEFAULT_MAX_RESTART_COUNT,
        client_factory: ClientFactory | None = None,
        normalizer: ResponseNormalizer | None = None,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        root_uri: str | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            prepare_launch: Called on every (re)start to produce the command
                line, so backend decisions are re-evaluated each time.
            max_restart_count: Automatic restarts allowed before giving up.
            client_factory: Builds a client from (publish, generation).
            normalizer: Applied to every completion result.
            handshake_timeout: Bound on the ``initialize`` request, in seconds.
            shutdown_timeout: Bound on the graceful ``shutdown`` request.
            request_timeout: Bound on each forwarded request.
            root_uri: Workspace root sent in ``initialize``.
        """
        self._prepare_launch = prepare_launch
        self._max_restart_count = max_restart_count
        self._client_factory: ClientFactory = client_factory or RholangLanguageClient
        self._normalizer = normalizer or ResponseNormalizer()
        self._handshake_timeout = handshake_timeout
        self._shutdown_timeout = shutdown_timeout
        self._request_timeout = request_timeout
        self._root_uri = root_uri

        self._state = SessionState.STOPPED
        self._restart_count = 0
        self._client: LanguageClient | None = None
        self._generation = 0
        self._launch: LaunchSpec | None = None
        self._lock = asyncio.Lock()
        self._events: asyncio.Queue[LifecycleEvent] = asyncio.Queue()
        self._supervisor: asyncio.Task | None = None

    # -----------------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def max_restart_count(self) -> int:
        return self._max_restart_count

    @property
    def client(self) -> LanguageClient | None:
        return self._client

    @property
    def launch(self) -> LaunchSpec | None:
        """Command line of the running server, if any."""
        return self._launch

    @property
    def events(self) -> asyncio.Queue[LifecycleEvent]:
        return self._events

    async def wait_for_events(self) -> None:
        """Block until every published lifecycle event has been handled."""
        await self._events.join()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def start(self) -> None:
        """Launch the server and complete the LSP handshake.

        Raises:
            RestartExhaustedError: If the session is permanently stopped.
            SpawnError: If the server process could not be spawned.
            HandshakeError: If ``initialize`` fails or times out.
        """
        async with self._lock:
            if self._state is SessionState.PERMANENTLY_STOPPED:
                raise RestartExhaustedError(self._restart_count, self._max_restart_count)
            if self._state is SessionState.RUNNING:
                return
            await self._start_locked(SessionState.STARTING)

    async def stop(self) -> None:
        """Shut the server down. Safe to call in any state."""
        async with self._lock:
            await self._stop_locked(graceful=True)
            if self._state is not SessionState.PERMANENTLY_STOPPED:
                self._state = SessionState.STOPPED

    async def restart(self, explicit: bool = True) -> bool:
        """Stop, then start again.

        Args:
            explicit: User-initiated restarts reset the restart counter and
                propagate start errors; automatic ones count against the budget.

        Returns:
            True if the server is running afterwards.
        """
        async with self._lock:
            return await self._restart_locked(explicit=explicit, graceful=True)

    async def aclose(self) -> None:
        """Stop the server and the supervisor task."""
        await self.stop()
        if self._supervisor is not None:
            self._supervisor.cancel()
            try:
                await self._supervisor
            except asyncio.CancelledError:
                pass
            self._supervisor = None

    async def _start_locked(self, transitional: SessionState) -> None:
        self._ensure_supervisor()
        self._state = transitional
        try:
            launch = await self._prepare_launch()
        except BaseException:
            self._state = SessionState.STOPPED
            raise

        self._generation += 1
        client = self._client_factory(self._events.put_nowait, self._generation)
        logger.info(f"Starting language server: {launch.describe()}")
        try:
            await client.start_io(launch.command, *launch.args, env=launch.env)
        except OSError as exc:
            self._state = SessionState.STOPPED
            raise SpawnError(
                f"Failed to spawn {launch.command}: {exc}",
                user_message="The Rholang language server could not be started.",
                context=ErrorContext(operation="spawn", executable=launch.command, component="session"),
                original_error=exc,
            ) from exc

        try:
            async with asyncio.timeout(self._handshake_timeout):
                result = await client.initialize_async(self._initialize_params())
            client.initialized(InitializedParams())
        except Exception as exc:
            self._state = SessionState.STOPPED
            await self._close_client(client, graceful=False)
            raise HandshakeError(
                f"Language server handshake failed: {exc!r}",
                context=ErrorContext(operation="initialize", executable=launch.command, component="session"),
                original_error=exc,
            ) from exc

        self._client = client
        self._launch = launch
        self._state = SessionState.RUNNING
        server_info = getattr(result, "server_info", None)
        name = getattr(server_info, "name", None) or "language server"
        logger.info(f"{name} is running (session generation {self._generation})")

    async def _stop_locked(self, graceful: bool) -> None:
        client, self._client = self._client, None
        self._launch = None
        if client is None:
            return
        # Exit events from this client are stale from here on.
        self._generation += 1
        await self._close_client(client, graceful=graceful)
        logger.info("Language server stopped")

    async def _restart_locked(self, explicit: bool, graceful: bool) -> bool:
        if explicit:
            self._restart_count = 0
        else:
            if self._state is SessionState.PERMANENTLY_STOPPED:
                logger.warning("Automatic restart rejected: session is permanently stopped")
                return False
            self._restart_count += 1
            if self._restart_count > self._max_restart_count:
                await self._stop_locked(graceful=False)
                self._state = SessionState.PERMANENTLY_STOPPED
                logger.error(
                    f"Language server restarted {self._max_restart_count} times; giving up. "
                    "Restart it manually to try again."
                )
                return False

        self._state = SessionState.RESTARTING
        await self._stop_locked(graceful=graceful)
        try:
            await self._start_locked(SessionState.RESTARTING)
        except OrchestratorError as exc:
            if explicit:
                raise
            logger.error(f"Automatic restart failed: {exc}")
            return False
        return True

    async def _close_client(self, client: LanguageClient, graceful: bool) -> None:
        if graceful:
            try:
                async with asyncio.timeout(self._shutdown_timeout):
                    await client.shutdown_async(None)
                client.exit(None)
            except Exception as exc:
                logger.debug(f"Graceful shutdown failed, terminating: {exc!r}")
        try:
            await client.stop()
        except Exception:
            logger.opt(exception=True).warning("Error while stopping the language client")

    def _initialize_params(self) -> InitializeParams:
        return InitializeParams(
            process_id=os.getpid(),
            capabilities=ClientCapabilities(),
            client_info=InitializeParamsClientInfoType(name=CLIENT_NAME, version=__version__),
            root_uri=self._root_uri,
        )

    # -----------------------------------------------------------------------
    # Supervision
    # -----------------------------------------------------------------------

    def _ensure_supervisor(self) -> None:
        if self._supervisor is None or self._supervisor.done():
            self._supervisor = asyncio.create_task(self._supervise(), name="session-supervisor")

    async def _supervise(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self._handle_event(event)
            except Exception:
                logger.opt(exception=True).error(f"Failed to handle lifecycle event {event}")
            finally:
                self._events.task_done()

    async def _handle_event(self, event: LifecycleEvent) -> None:
        if event.kind is LifecycleEventKind.ERRORED:
            logger.warning(f"Language server reported an error: {event.error}")
            return
        async with self._lock:
            if event.generation != self._generation or self._state is not SessionState.RUNNING:
                logger.debug(f"Ignoring exit of a retired server (pid {event.pid})")
                return
            logger.warning(f"Language server (pid {event.pid}) {event.describe()} unexpectedly")
            await self._restart_locked(explicit=False, graceful=False)

    # -----------------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------------

    async def complete(self, params: CompletionParams) -> CompletionList:
        """Forward a completion request and normalize the result.

        While no server is running the result is an empty list, flagged
        incomplete when so configured, so the editor asks again later.
        A request the server never answers is treated the same way.
        """
        client = self._client
        if client is None or self._state is not SessionState.RUNNING:
            logger.debug(f"Completion requested while session is {self._state.value}")
            return self._normalizer.normalize(None)
        try:
            async with asyncio.timeout(self._request_timeout):
                raw: Any = await client.text_document_completion_async(params)
        except TimeoutError:
            logger.warning(f"Completion request timed out after {self._request_timeout}s")
            return self._normalizer.normalize(None)
        return self._normalizer.normalize(raw)
