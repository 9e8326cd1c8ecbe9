"""Logging setup."""

from vaultclients.monitoring.logger import configure_logger

__all__ = ["configure_logger"]
