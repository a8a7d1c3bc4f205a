"""Subagents used by the orchestrator."""
