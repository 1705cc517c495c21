"""
Orchestrator utility modules.

- Logging (STDERR-only, activation-scoped)
- Subprocess helpers shared by the validator and server launchers
- Child-process output forwarding
"""

from .logger import (
    base36_encode,
    configure_logging,
    generate_activation_id,
    get_activation_id,
    logger,
    to_loguru_level,
    with_activation_id,
)
from .streams import pump_lines
from .subprocess_util import quote_command, subprocess_kwargs

__all__ = [
    "base36_encode",
    "configure_logging",
    "generate_activation_id",
    "get_activation_id",
    "logger",
    "to_loguru_level",
    "with_activation_id",
    "pump_lines",
    "quote_command",
    "subprocess_kwargs",
]
