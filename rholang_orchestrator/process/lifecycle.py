"""Process lifecycle events.

Managers publish these onto an ``asyncio.Queue`` instead of invoking
callbacks, and consumers read them at points of their choosing. This keeps
"user asked to stop" and "process died on its own" from racing each other.
"""

from __future__ import annotations

import signal as signal_module
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from rholang_orchestrator.constants import utcnow


class ProcessState(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"


class LifecycleEventKind(StrEnum):
    EXITED = "exited"
    ERRORED = "errored"


@dataclass(frozen=True)
class LifecycleEvent:
    """Something happened to a managed process."""

    kind: LifecycleEventKind
    pid: int | None = None
    returncode: int | None = None
    signal: int | None = None
    error: str | None = None
    generation: int = 0
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def exited(cls, pid: int | None, returncode: int | None, generation: int = 0) -> LifecycleEvent:
        """Build an EXITED event, splitting a negative return code into a signal."""
        sig = None
        if returncode is not None and returncode < 0:
            sig = -returncode
        return cls(
            kind=LifecycleEventKind.EXITED,
            pid=pid,
            returncode=returncode,
            signal=sig,
            generation=generation,
        )

    @classmethod
    def errored(cls, error: BaseException | str, pid: int | None = None, generation: int = 0) -> LifecycleEvent:
        return cls(
            kind=LifecycleEventKind.ERRORED,
            pid=pid,
            error=str(error),
            generation=generation,
        )

    def describe(self) -> str:
        if self.kind is LifecycleEventKind.ERRORED:
            return f"errored: {self.error}"
        if self.signal is not None:
            try:
                name = signal_module.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            return f"killed by {name}"
        return f"exited with code {self.returncode}"
