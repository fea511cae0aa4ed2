"""HTTP API, client, command line and process helpers for a process orchestrator."""

__version__ = "0.1.0"