"""
FitFlow utilities.
"""

from .logging import setup_logging, setup_structlog, get_logger

__all__ = [
    "setup_logging",
    "setup_structlog",
    "get_logger",
]
