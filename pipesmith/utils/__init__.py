"""Utilities package."""

from .exceptions import (
    PipesmithError,
    ConfigurationError,
    PipeError,
    DeployError,
    ChartError,
    ImageError,
    BuildError,
    NotificationError,
)
from .logging import setup_logging

__all__ = [
    "PipesmithError", "ConfigurationError", "PipeError", "DeployError",
    "ChartError", "ImageError", "BuildError", "NotificationError",
    "setup_logging",
]
