"""Exception types raised by the anonymizer core."""

from __future__ import annotations


class AnonymizerError(Exception):
    """Base class for all anonymizer errors."""


class InitializationFailure(AnonymizerError, RuntimeError):
    """Detector model or compute backend could not be loaded (or timed out)."""


class DetectionFailure(AnonymizerError, RuntimeError):
    """The face detector raised while the cascade was running."""


class InvalidInput(AnonymizerError, ValueError):
    """Degenerate or undecodable image, or an unknown render mode."""


class UnsupportedCapability(AnonymizerError, RuntimeError):
    """A raster backend was asked for a resampling mode it does not provide."""


class SessionBusy(AnonymizerError, RuntimeError):
    """A new image was submitted while another one is still being processed."""
