import platform
import shlex
import subprocess
from collections.abc import Sequence


def subprocess_kwargs() -> dict:
    """
    Returns a dictionary of keyword arguments for process spawns, adding
    platform-specific flags that we want to use consistently.
    """
    kwargs = {}
    if platform.system() == "Windows":
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW  # type: ignore
    else:
        # Children must not receive the terminal's SIGINT; teardown stops them.
        kwargs["start_new_session"] = True
    return kwargs


def quote_command(command: str, args: Sequence[str]) -> str:
    """Render a command line for logging."""
    return " ".join(shlex.quote(part) for part in (command, *args))
