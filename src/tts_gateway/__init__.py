"""Text-to-speech gateway: HTTP proxy service and terminal client."""

__version__ = "0.1.0"
