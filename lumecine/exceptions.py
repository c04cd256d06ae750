"""LumeCine exception classes."""
from __future__ import annotations


class LumeCineError(Exception):
    """Base class for all LumeCine errors."""


class ConfigError(LumeCineError, ValueError):
    """A required setting is missing or invalid. Fatal at startup."""


class UpstreamError(LumeCineError):
    """Network fault, timeout or non-2xx answer from an upstream service."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ExtractionError(LumeCineError):
    """Page markup or JSON payload did not have the expected shape."""


class RegistryClosedError(LumeCineError, RuntimeError):
    """A provider was registered after the registry was sealed."""
