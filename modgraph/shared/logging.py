"""
Logging setup shared by the CLI commands.

Provides a consistent logging format so that a crawl run can be
followed across the proxy client, the engine and the graph writer.
"""

import logging
import uuid

NOISY_LOGGERS = ("httpx", "httpcore", "neo4j")


def setup_logging(name: str, level: str = "INFO") -> logging.Logger:
    """
    Configure logging for a command.

    Args:
        name: Name of the component (used as logger name).
        level: Log level string (e.g. 'INFO', 'DEBUG').

    Returns:
        Configured logger instance.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s  %(name)-30s  %(levelname)-7s  %(message)s",
    )
    # httpx logs every request at INFO
    if numeric_level > logging.DEBUG:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)
    return logging.getLogger(name)


def generate_correlation_id() -> str:
    """Generate a short unique id used to tag a crawl run in the logs."""
    return uuid.uuid4().hex[:12]
