"""Logging decorator for MCP tools."""

import functools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from news_sync.log_system.correlation import correlation_scope

logger = logging.getLogger(__name__)

# Arguments never written to logs
_HIDDEN_ARGS = {"ctx"}


def tool_logger(
    func: Callable[..., Awaitable[Dict[str, Any]]],
    config: Optional[Dict[str, Any]] = None,
) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Log each call of an async tool with its duration and outcome.

    Each call runs under its own correlation ID.

    Args:
        func: Tool function
        config: Server config as a dict; ``log_level`` DEBUG also logs arguments
    """
    log_arguments = (config or {}).get("log_level") == "DEBUG"

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Dict[str, Any]:
        with correlation_scope("tool"):
            if log_arguments:
                shown = {k: v for k, v in kwargs.items() if k not in _HIDDEN_ARGS}
                logger.debug(f"Tool {func.__name__} called with {shown}")
            else:
                logger.info(f"Tool {func.__name__} called")

            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.error(f"Tool {func.__name__} raised after {elapsed_ms:.1f}ms")
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            success = result.get("success") if isinstance(result, dict) else None
            logger.info(f"Tool {func.__name__} finished in {elapsed_ms:.1f}ms (success={success})")
            return result

    return wrapper
