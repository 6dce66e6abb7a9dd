"""Conversation-view core for a webmail client."""

__version__ = "0.1.0"
