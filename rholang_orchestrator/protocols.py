"""Protocols at the orchestrator's seams.

The selector, waiter and session controller depend on these shapes rather
than on concrete classes, so probes and language-server clients can be
swapped (for tests or for a different transport) without touching the
orchestration logic.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rholang_orchestrator.health import ProbeResult


@runtime_checkable
class Prober(Protocol):
    """A single bounded liveness check against ``host:port``."""

    async def probe(self, host: str, port: int) -> ProbeResult:
        """Return the probe outcome. Must never raise."""
        ...


@runtime_checkable
class LanguageClient(Protocol):
    """The slice of a language-server client the session controller drives.

    Matches ``pygls.lsp.client.BaseLanguageClient``.
    """

    async def start_io(self, cmd: str, *args: str, **kwargs: Any) -> None:
        """Spawn the server and connect over stdio."""
        ...

    async def initialize_async(self, params: Any) -> Any:
        ...

    def initialized(self, params: Any) -> None:
        ...

    async def shutdown_async(self, params: Any) -> Any:
        ...

    def exit(self, params: Any) -> None:
        ...

    async def stop(self) -> None:
        """Tear down the transport and terminate the server process."""
        ...

    async def text_document_completion_async(self, params: Any) -> Any:
        ...
