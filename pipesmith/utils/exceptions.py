"""
Exceptions raised by pipesmith pipes.
"""

from typing import Any, Optional


class PipesmithError(Exception):
    """Base exception for all pipe failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(PipesmithError):
    """Raised when a required variable is missing or invalid."""

    def __init__(
        self, message: str, config_field: Optional[str] = None, config_value: Any = None
    ):
        details = {}
        if config_field:
            details["config_field"] = config_field
        if config_value is not None:
            details["config_value"] = str(config_value)
        super().__init__(message, details)
        self.config_field = config_field
        self.config_value = config_value


class PipeError(PipesmithError):
    """Raised when a mandatory pipe step fails."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        returncode: Optional[int] = None,
    ):
        details = {}
        if step:
            details["step"] = step
        if returncode is not None:
            details["returncode"] = returncode
        super().__init__(message, details)
        self.step = step
        self.returncode = returncode


class DeployError(PipeError):
    """Raised when a deployment step fails."""


class ChartError(PipeError):
    """Raised when chart validation, packaging or publishing fails."""


class ImageError(PipeError):
    """Raised when building, scanning or pushing a container image fails."""


class BuildError(PipeError):
    """Raised when a build or test command fails."""


class NotificationError(PipesmithError):
    """Raised when a notification cannot be delivered."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.status_code = status_code
