"""Tests for RholangLanguageClient against a real stdio language server."""

import asyncio
import os
import signal
import sys
from types import SimpleNamespace

import pytest
from loguru import logger
from lsprotocol.types import CompletionParams, Position, TextDocumentIdentifier

from rholang_orchestrator.lsp.client import RholangLanguageClient
from rholang_orchestrator.lsp.session import LaunchSpec, SessionController, SessionState
from rholang_orchestrator.process.lifecycle import LifecycleEventKind

pytestmark = pytest.mark.skipif(os.name == "nt", reason="POSIX signals")

# Minimal stdio server: answers initialize, completion and shutdown. With
# --noisy it writes about 1 MB to stderr before every reply.
STDIO_SERVER = r'''
import json
import sys

NOISY = "--noisy" in sys.argv


def read_message():
    length = None
    while True:
        line = sys.stdin.buffer.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            break
        name, _, value = line.decode("ascii").partition(":")
        if name.lower() == "content-length":
            length = int(value)
    if length is None:
        return {}
    return json.loads(sys.stdin.buffer.read(length))


def respond(message, result):
    body = json.dumps({"jsonrpc": "2.0", "id": message["id"], "result": result}).encode()
    sys.stdout.buffer.write(b"Content-Length: %d\r\n\r\n" % len(body) + body)
    sys.stdout.buffer.flush()


sys.stderr.write("stub-rholang-server listening on stdio\n")
sys.stderr.flush()

while True:
    message = read_message()
    if message is None:
        break
    if NOISY:
        for _ in range(1000):
            sys.stderr.write("trace " + "x" * 1000 + "\n")
        sys.stderr.flush()
    method = message.get("method")
    if method == "initialize":
        respond(message, {
            "capabilities": {"completionProvider": {}},
            "serverInfo": {"name": "stub-rholang-server"},
        })
    elif method == "textDocument/completion":
        respond(message, [{"label": "stdout"}, {"label": "new", "sortText": "0"}])
    elif method == "shutdown":
        respond(message, None)
    elif method == "exit":
        break
'''

PARAMS = CompletionParams(
    text_document=TextDocumentIdentifier(uri="file:///tmp/hello.rho"),
    position=Position(line=0, character=3),
)


@pytest.fixture
def server_script(tmp_path):
    path = tmp_path / "stub_server.py"
    path.write_text(STDIO_SERVER)
    return path


@pytest.fixture
def server_lines():
    lines = []
    handler_id = logger.add(
        lambda m: lines.append(m.record["message"]),
        level="INFO",
        filter=lambda r: r["extra"].get("source") == "server",
    )
    yield lines
    logger.remove(handler_id)


def _controller(script, *extra_args):
    async def prepare_launch():
        return LaunchSpec(command=sys.executable, args=(str(script), *extra_args))

    return SessionController(
        prepare_launch,
        max_restart_count=2,
        handshake_timeout=5.0,
        shutdown_timeout=2.0,
        request_timeout=5.0,
    )


async def _wait_until(predicate, timeout=10.0):
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.05)


class TestStdioSession:
    @pytest.mark.asyncio
    async def test_handshake_and_completion(self, server_script, server_lines):
        session = _controller(server_script)
        try:
            await asyncio.wait_for(session.start(), timeout=15.0)
            assert session.state is SessionState.RUNNING
            assert isinstance(session.client, RholangLanguageClient)
            assert session.client.pid is not None

            result = await session.complete(PARAMS)
            assert result.is_incomplete is True
            assert [item.label for item in result.items] == ["stdout", "new"]
            assert result.items[0].filter_text == "stdout"
            assert result.items[0].sort_text == "stdout"
            assert result.items[1].sort_text == "0"
        finally:
            await asyncio.wait_for(session.aclose(), timeout=15.0)
        assert session.state is SessionState.STOPPED
        assert "stub-rholang-server listening on stdio" in server_lines

    @pytest.mark.asyncio
    async def test_killed_server_is_restarted(self, server_script):
        session = _controller(server_script)
        try:
            await asyncio.wait_for(session.start(), timeout=15.0)
            first = session.client
            os.kill(first.pid, signal.SIGKILL)

            await _wait_until(
                lambda: session.restart_count == 1
                and session.state is SessionState.RUNNING
                and session.client is not first
            )
            assert session.client.pid != first.pid
            result = await session.complete(PARAMS)
            assert len(result.items) == 2
        finally:
            await asyncio.wait_for(session.aclose(), timeout=15.0)

    @pytest.mark.asyncio
    async def test_stop_terminates_server(self, server_script):
        session = _controller(server_script)
        try:
            await asyncio.wait_for(session.start(), timeout=15.0)
            client = session.client
            await asyncio.wait_for(session.stop(), timeout=15.0)
            assert session.state is SessionState.STOPPED
            assert session.client is None
            assert client._server.returncode is not None
            assert session.restart_count == 0
        finally:
            await session.aclose()

    @pytest.mark.asyncio
    async def test_chatty_stderr_does_not_block(self, server_script, server_lines):
        session = _controller(server_script, "--noisy")
        try:
            await asyncio.wait_for(session.start(), timeout=15.0)
            assert session.state is SessionState.RUNNING
            result = await asyncio.wait_for(session.complete(PARAMS), timeout=15.0)
            assert len(result.items) == 2
        finally:
            await asyncio.wait_for(session.aclose(), timeout=15.0)
        assert session.state is SessionState.STOPPED
        assert len(server_lines) >= 2000


class TestLifecycleWiring:
    @pytest.mark.asyncio
    async def test_server_exit_publishes_generation(self):
        events = []
        client = RholangLanguageClient(events.append, generation=3)
        await client.server_exit(SimpleNamespace(pid=77, returncode=-9))
        (event,) = events
        assert event.kind is LifecycleEventKind.EXITED
        assert event.pid == 77
        assert event.signal == 9
        assert event.generation == 3

    @pytest.mark.asyncio
    async def test_protocol_error_publishes_errored(self):
        events = []
        client = RholangLanguageClient(events.append, generation=5)
        client.report_server_error(ValueError("bad frame"), ValueError("source"))
        (event,) = events
        assert event.kind is LifecycleEventKind.ERRORED
        assert event.generation == 5

    @pytest.mark.asyncio
    async def test_pid_unknown_before_start(self):
        assert RholangLanguageClient(lambda event: None, generation=1).pid is None
