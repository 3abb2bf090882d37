"""Logging configuration."""

import logging
import os
import sys

from pydantic import BaseModel, Field

# Screenshots and request bodies make their debug output unreadable
NOISY_LOGGERS = ("anthropic", "httpx", "httpcore", "uvicorn.access")


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    quiet_loggers: tuple[str, ...] = Field(default=NOISY_LOGGERS)

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Read LOG_LEVEL and LOG_FORMAT, keeping defaults for anything unset."""
        overrides = {}
        if level := os.getenv("LOG_LEVEL"):
            overrides["level"] = level
        if log_format := os.getenv("LOG_FORMAT"):
            overrides["format"] = log_format
        return cls(**overrides)


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger for the service and the CLI."""
    config = config or LogConfig.from_env()

    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
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
        level: Explicit level, overriding LOG_LEVEL

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    return logger
