"""Utility helpers shared across the client."""
from .logging import setup_logging, get_logger, bind_logger, ClientLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_logger",
    "ClientLogger",
]
