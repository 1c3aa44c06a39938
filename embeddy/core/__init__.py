"""Core utilities shared by every embeddy package."""

from .errors import EmbeddyError
from .log import get_logger, setup_logging

__all__ = ["EmbeddyError", "get_logger", "setup_logging"]
