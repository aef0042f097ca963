"""
Error taxonomy for the convergence engine.

Only ``ConfigurationError`` and ``LockError`` ever abort a run.
Detection and install problems are recovered into outcomes; render
problems are reported against the render step alone.
"""

from __future__ import annotations

from pathlib import Path


class ConvergeError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(ConvergeError):
    """The catalog is unusable: cycle, duplicate id, unknown dependency.

    Raised at plan time, before any unit is touched.
    """

    def __init__(self, message: str, units: list[str] | None = None):
        super().__init__(message)
        self.units: list[str] = list(units or [])


class DetectionError(ConvergeError):
    """A presence or version query could not be answered."""


class InstallError(ConvergeError):
    """An install action could not be carried out."""


class RenderError(ConvergeError):
    """A derived configuration artifact could not be written."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class LockError(ConvergeError):
    """Another run already holds the machine lock."""
