"""Jira REST access shared by the sync engine and the MCP server."""

from .async_utils import run_sync
from .client import JiraClient
from .throttle import RateLimiter, TTLCache

__all__ = ["JiraClient", "RateLimiter", "TTLCache", "run_sync"]
