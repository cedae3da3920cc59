"""Bidirectional sync between a local task store and Jira."""

__version__ = "0.1.0"
