"""
Rholang Orchestrator - lifecycle management for the Rholang toolchain.

Coordinates the two external processes an editor integration depends on:
- The rholang-language-server, spoken to over stdio
- An optional RNode validator node, reached over gRPC

It decides at startup which validation backend the language server should
use, auto-starts RNode when configured to, degrades to parser-only
validation when no validator is reachable, and normalizes completion
responses before they reach the editor.
"""

__version__ = "0.1.0"
