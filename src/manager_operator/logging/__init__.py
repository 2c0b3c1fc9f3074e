"""Logging configuration for manager_operator."""

from manager_operator.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
