from __future__ import annotations

from typing import Optional


class CensorKitError(Exception):
    """Base class for pipeline errors."""


class InitError(CensorKitError, RuntimeError):
    """Model or label vocabulary could not be loaded; the detector is unusable until re-initialized."""


class InvalidImageError(CensorKitError, ValueError):
    """Malformed, undecodable or zero-dimension input image."""


class ShapeMismatchError(CensorKitError, ValueError):
    """Adapter output shape disagrees with the configured class count or box count."""


class DetectionError(CensorKitError):
    """
    Raised by `Detector.detect` for any failure of a single call.

    The underlying exception is available as `cause` (and `__cause__`).
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def fatal(self) -> bool:
        # Model/config mismatches must surface instead of producing empty results forever.
        return isinstance(self.cause, (ShapeMismatchError, InitError))
