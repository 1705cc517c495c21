"""Command-line interface for the Rholang orchestrator."""

from .main import cli

__all__ = ["cli"]
