"""Domain exceptions shared by the service and the terminal client."""

from __future__ import annotations

from typing import Any


class TTSGatewayError(Exception):
    """Base class for every expected, user-facing failure."""


class InputValidationError(TTSGatewayError, ValueError):
    """Raised when user input is missing or out of range. Never retried."""


class ConfigurationError(TTSGatewayError):
    """Raised when local configuration is missing. Never retried."""


class UpstreamError(TTSGatewayError):
    """Wrap transport or API failures when talking to an external provider."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


__all__ = [
    "ConfigurationError",
    "InputValidationError",
    "TTSGatewayError",
    "UpstreamError",
]
