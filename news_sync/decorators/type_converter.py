"""Argument type conversion for MCP tools.

Some MCP clients send every argument as a string. Arguments annotated as
``int``, ``float`` or ``bool`` are converted before the tool runs; a value
that cannot be converted raises ValueError, which exception_handler reports
as a failed result.
"""

import functools
import inspect
import typing
from typing import Any, Awaitable, Callable, Dict

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


def _to_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def _convert(name: str, value: Any, annotation: Any) -> Any:
    if not isinstance(value, str):
        return value
    if annotation is bool:
        return _to_bool(name, value)
    try:
        if annotation is int:
            return int(value.strip())
        if annotation is float:
            return float(value.strip())
    except ValueError:
        raise ValueError(f"Invalid {annotation.__name__} for {name}: {value!r}") from None
    return value


def type_converter(func: Callable[..., Awaitable[Dict[str, Any]]]) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Convert string arguments to the tool's annotated scalar types."""
    signature = inspect.signature(func)
    hints = typing.get_type_hints(func)
    targets = {
        name: hints[name]
        for name in signature.parameters
        if hints.get(name) in (int, float, bool)
    }

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Dict[str, Any]:
        bound = signature.bind_partial(*args, **kwargs)
        for name, value in bound.arguments.items():
            if name in targets:
                bound.arguments[name] = _convert(name, value, targets[name])
        return await func(*bound.args, **bound.kwargs)

    return wrapper
