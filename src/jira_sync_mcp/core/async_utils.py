"""Async utilities for bridging the blocking sync engine to async MCP handlers."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used to wrap REST calls and whole sync runs in MCP tool handlers.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        # In MCP tool handler:
        result = await run_sync(engine.perform_bidirectional_sync, options)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
