"""Command-line interface for agent-registry."""
