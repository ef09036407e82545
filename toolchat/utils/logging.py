"""Logging setup shared by the chat service, the coordinator and the CLI."""

import logging
import os
import sys

from pydantic import BaseModel, Field

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LogConfig(BaseModel):
    """Root logger settings for one process."""

    level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = DEFAULT_FORMAT
    date_format: str = "%Y-%m-%d %H:%M:%S"
    # Client libraries that log every request at INFO
    quiet_loggers: tuple[str, ...] = ("anthropic", "httpx", "httpcore", "redis", "uvicorn.access")


def resolve_level(level: str | None) -> int:
    """Map a level name to its logging constant; unknown names fall back to INFO."""
    value = logging.getLevelName((level or "INFO").upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger once per process (safe to call again)."""
    config = config or LogConfig()

    logging.basicConfig(
        level=resolve_level(config.level),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level, otherwise LOG_LEVEL from the environment

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level or os.getenv("LOG_LEVEL")))
    return logger
