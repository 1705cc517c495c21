"""Executable resolution.

Well-known bare names (``rholang-language-server``, ``rnode``) are searched
on the executable search path; anything else is taken as a literal path.
A candidate counts as found only when it is a regular file with at least
one execute bit set.
"""

from __future__ import annotations

import os
import stat
from collections.abc import Iterable
from dataclasses import dataclass

from rholang_orchestrator.constants import (
    DEFAULT_SERVER_EXECUTABLE,
    DEFAULT_VALIDATOR_EXECUTABLE,
)
from rholang_orchestrator.types.errors import ErrorCode, ErrorContext, ResolutionError
from rholang_orchestrator.utils.logger import logger


@dataclass(frozen=True)
class Found:
    path: str


@dataclass(frozen=True)
class NotFound:
    candidate: str


Resolution = Found | NotFound


def is_executable(path: str) -> bool:
    """Check that *path* is a regular file with an execute bit.

    Returns False when the path does not exist.

    Raises:
        ResolutionError: On any other I/O failure (e.g. permission denied
            while traversing a parent directory).
    """
    try:
        st = os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as exc:
        raise ResolutionError(
            f"Failed to inspect {path}: {exc}",
            code=ErrorCode.RESOLUTION_IO_FAILED,
            context=ErrorContext(operation="stat", executable=path),
            original_error=exc,
        ) from exc
    return stat.S_ISREG(st.st_mode) and (st.st_mode & 0o111) != 0


class ExecutableResolver:
    """Locates and validates executables."""

    def __init__(
        self,
        well_known: Iterable[str] = (DEFAULT_SERVER_EXECUTABLE, DEFAULT_VALIDATOR_EXECUTABLE),
        search_path: str | None = None,
    ) -> None:
        """
        :param well_known: bare names that trigger a search-path lookup
        :param search_path: ``os.pathsep``-separated directories; the process
            ``PATH`` when omitted
        """
        self._well_known = frozenset(well_known)
        self._search_path = search_path

    def is_well_known(self, candidate: str) -> bool:
        return candidate in self._well_known

    def resolve(self, candidate: str) -> Resolution:
        """Resolve *candidate* to an absolute executable path."""
        if not candidate:
            return NotFound(candidate)

        if self.is_well_known(candidate):
            for directory in self._directories():
                path = os.path.join(directory, candidate)
                if is_executable(path):
                    return Found(os.path.abspath(path))
            logger.debug(f"{candidate} not found on the search path")
            return NotFound(candidate)

        path = os.path.abspath(os.path.expanduser(candidate))
        if is_executable(path):
            return Found(path)
        return NotFound(candidate)

    def _directories(self) -> list[str]:
        if self._search_path is not None:
            return [d for d in self._search_path.split(os.pathsep) if d]
        return [d for d in os.get_exec_path() if d]
