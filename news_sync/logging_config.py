"""Logging setup for news_sync.

Logs go to stderr (stdout carries the MCP STDIO transport) and, when
configured, to a rotating log file. Every line carries the correlation ID of
the tool call or sync cycle that produced it.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from news_sync.config import ServerConfig
from news_sync.log_system.correlation import CorrelationIdFilter

LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"

logger = logging.getLogger("news_sync")


def setup_logging(config: Optional[ServerConfig] = None) -> logging.Logger:
    """Configure the news_sync logger.

    Args:
        config: Server configuration (log_level, log_file)

    Returns:
        The configured package logger
    """
    config = config or ServerConfig()

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    correlation_filter = CorrelationIdFilter()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(correlation_filter)
    logger.addHandler(stream_handler)

    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=3)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(correlation_filter)
        logger.addHandler(file_handler)

    logger.setLevel(config.log_level)
    logger.propagate = False
    return logger
