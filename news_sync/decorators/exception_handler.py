"""Exception handling decorator for MCP tools.

Tool failures are returned to the client as ``{"success": False, "error": ...}``
instead of propagating into the server.
"""

import functools
import logging
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


def exception_handler(func: Callable[..., Awaitable[Dict[str, Any]]]) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Wrap an async tool so errors become a failed result."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Dict[str, Any]:
        try:
            return await func(*args, **kwargs)
        except ValueError as e:
            logger.warning(f"Tool {func.__name__} rejected input: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.error(f"Tool {func.__name__} failed: {e}", exc_info=True)
            return {"success": False, "error": f"{type(e).__name__}: {e}"}

    return wrapper
