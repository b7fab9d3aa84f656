"""Error types raised by field construction."""

from __future__ import annotations


class GlobeFieldError(ValueError):
    """Base class for recoverable field construction failures."""


class EmptyInput(GlobeFieldError):
    """Raised when a raster has zero width or height."""


class InvalidDimensions(GlobeFieldError):
    """Raised when a pixel buffer does not hold width*height RGBA pixels."""
