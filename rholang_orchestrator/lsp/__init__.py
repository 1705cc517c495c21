"""Language-server side of the orchestrator.

Session lifecycle over a pygls stdio client, plus normalization of
completion responses before they reach the editor.
"""
