"""Logging helpers for news_sync."""

from .correlation import (
    CorrelationIdFilter,
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
)

__all__ = [
    "CorrelationIdFilter",
    "correlation_scope",
    "generate_correlation_id",
    "get_correlation_id",
]
