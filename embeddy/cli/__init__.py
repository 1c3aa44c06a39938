"""Command line interface for embeddy."""

from .lib import build_parser, main

__all__ = ["build_parser", "main"]
