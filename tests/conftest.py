"""
Pytest configuration and shared fixtures for orchestrator tests.

Fakes stand in for the network probe, the validator process manager and
the pygls client so orchestration logic runs without RNode or a language
server installed.
"""

from __future__ import annotations

import asyncio
import socket
import sys
from pathlib import Path

import pytest
from loguru import logger
from lsprotocol.types import InitializeResult, InitializeResultServerInfoType, ServerCapabilities

from rholang_orchestrator.health import ProbeResult
from rholang_orchestrator.process.lifecycle import LifecycleEvent, ProcessState
from rholang_orchestrator.process.validator import ProcessHandle
from rholang_orchestrator.types.errors import SpawnError

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeProbe:
    """Prober returning scripted outcomes, then per-port reachability."""

    def __init__(self, outcomes=(), reachable_ports=(), on_probe=None):
        self.calls: list[tuple[str, int]] = []
        self._outcomes = list(outcomes)
        self.reachable_ports = set(reachable_ports)
        self._on_probe = on_probe

    async def probe(self, host, port):
        self.calls.append((host, port))
        if self._on_probe is not None:
            self._on_probe()
        if self._outcomes:
            return ProbeResult(self._outcomes.pop(0))
        return ProbeResult(port in self.reachable_ports)


class FakeValidatorManager:
    """Records spawn requests instead of launching RNode."""

    def __init__(self, fail_spawn=False, running=False):
        self.started: list[tuple[str, list[str]]] = []
        self.stopped = 0
        self.fail_spawn = fail_spawn
        self.handle = ProcessHandle(pid=4242, state=ProcessState.RUNNING, owned=True) if running else None

    @property
    def is_running(self):
        return self.handle is not None and self.handle.running

    async def start(self, path, args=()):
        self.started.append((path, list(args)))
        if self.fail_spawn:
            raise SpawnError(f"Failed to spawn {path}: permission denied")
        self.handle = ProcessHandle(pid=4242, state=ProcessState.RUNNING, owned=True)
        return self.handle

    async def stop(self, handle=None):
        target = handle or self.handle
        if target is None or not target.owned:
            return False
        self.stopped += 1
        target.state = ProcessState.EXITED
        target.owned = False
        self.handle = None
        return True


class FakeClient:
    """In-memory stand-in for pygls' BaseLanguageClient."""

    def __init__(self, publish, generation, factory):
        self._publish = publish
        self.generation = generation
        self._factory = factory
        self.pid = 1000 + generation
        self.command = None
        self.args = ()
        self.env = None
        self.initialized_called = False
        self.shutdown_called = False
        self.exit_called = False
        self.stopped = False

    async def start_io(self, cmd, *args, **kwargs):
        self.command = cmd
        self.args = args
        self.env = kwargs.get("env")
        if self._factory.fail_spawn:
            raise FileNotFoundError(cmd)

    async def initialize_async(self, params):
        self.initialize_params = params
        if self._factory.fail_handshake:
            raise RuntimeError("initialize failed")
        return InitializeResult(
            capabilities=ServerCapabilities(),
            server_info=InitializeResultServerInfoType(name="fake-rholang-server"),
        )

    def initialized(self, params):
        self.initialized_called = True

    async def shutdown_async(self, params):
        self.shutdown_called = True

    def exit(self, params):
        self.exit_called = True

    async def stop(self):
        self.stopped = True
        # pygls reports the exit of the process it just terminated
        self._publish(LifecycleEvent.exited(self.pid, -15, generation=self.generation))

    async def text_document_completion_async(self, params):
        if self._factory.hang_completion:
            await asyncio.Event().wait()
        return self._factory.completion

    def crash(self, returncode=101):
        self._publish(LifecycleEvent.exited(self.pid, returncode, generation=self.generation))


class FakeClientFactory:
    def __init__(self):
        self.clients: list[FakeClient] = []
        self.fail_handshake = False
        self.fail_spawn = False
        self.hang_completion = False
        self.completion = None

    def __call__(self, publish, generation):
        client = FakeClient(publish, generation, self)
        self.clients.append(client)
        return client

    @property
    def latest(self) -> FakeClient:
        return self.clients[-1]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_executable(directory: Path, name: str, mode: int = 0o755) -> Path:
    path = directory / name
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(mode)
    return path


def free_port() -> int:
    """A TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_loguru():
    """CLI tests reconfigure loguru onto captured streams; restore afterwards."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


@pytest.fixture
def fake_probe_cls():
    return FakeProbe


@pytest.fixture
def fake_validator_cls():
    return FakeValidatorManager


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def bin_dir(tmp_path):
    """A search-path directory holding fake server and RNode executables."""
    directory = tmp_path / "bin"
    directory.mkdir()
    make_executable(directory, "rholang-language-server")
    make_executable(directory, "rnode")
    return directory


@pytest.fixture
def empty_bin_dir(tmp_path):
    directory = tmp_path / "empty-bin"
    directory.mkdir()
    return directory


@pytest.fixture
def unused_port():
    return free_port()


@pytest.fixture
def make_exec():
    return make_executable
