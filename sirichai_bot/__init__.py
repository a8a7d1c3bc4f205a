"""Sirichai Electric customer-support chatbot (HTTP API + LINE webhook)."""

__version__ = "1.0.0"
