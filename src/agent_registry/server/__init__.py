"""HTTP server mode for agent-registry.

Provides a lightweight stdlib-based HTTP API for agent registration and
DID diagnostics without requiring a web framework.
"""
from __future__ import annotations

from agent_registry.server.app import AgentRegistryHandler, create_server, run_server

__all__ = ["AgentRegistryHandler", "create_server", "run_server"]
