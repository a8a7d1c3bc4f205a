"""Reusable skills used by the orchestrator and entry points."""
