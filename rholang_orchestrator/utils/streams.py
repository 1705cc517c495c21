"""Forwarding of child-process output streams into the log."""

from __future__ import annotations

import asyncio

from rholang_orchestrator.utils.logger import logger


async def pump_lines(stream: asyncio.StreamReader | None, level: str, source: str) -> None:
    """Log *stream* line by line until EOF.

    The stream is always drained to EOF: a child blocked on a full pipe
    never exits. A line longer than the reader's limit is dropped (its
    buffered prefix is discarded by ``readline``) and reading continues.
    """
    if stream is None:
        return
    log = logger.bind(source=source)
    while True:
        try:
            raw = await stream.readline()
        except ValueError:
            log.debug(f"Dropped a {source} output line longer than the buffer limit")
            continue
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").rstrip()
        if line:
            log.log(level, line)
