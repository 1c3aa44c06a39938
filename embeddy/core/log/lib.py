"""Core logging implementation for embeddy."""

import logging
import sys
from typing import Optional

__all__ = ["get_logger", "resolve_level", "setup_logging"]


def resolve_level(level: int | str | None = None) -> int:
    """Resolve a log level from a name, a number, or EMBEDDY_LOG_LEVEL.

    Args:
        level: Level name ("debug", "INFO"), numeric level, or None to read
            the environment.

    Returns:
        Numeric logging level. Unknown names fall back to INFO.
    """
    if level is None:
        from embeddy.config import EnvVar, get_environment

        level = get_environment(EnvVar.EMBEDDY_LOG_LEVEL)
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str | None = None, stream=sys.stderr) -> None:
    """Configure basic logging.

    Args:
        level: Logging level. Reads EMBEDDY_LOG_LEVEL when omitted.
        stream: Output stream.
    """
    logging.basicConfig(
        level=resolve_level(level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=stream,
        force=True,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Name of the logger.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name or "embeddy")
