"""Utility functions for Buildcart."""

from buildcart.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
