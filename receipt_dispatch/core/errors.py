"""
Exception taxonomy for Receipt Dispatch.

Every failure that can happen while a job is running maps onto one of these
types so the executor can decide, per segment, whether to degrade or abort:

- TransportOpenError: device missing, busy, or not permitted (fatal to the job)
- TransportWriteError / DeviceNotOpen: write failed or device disconnected mid-job
- CloseError: closing the session failed (logged and swallowed by the executor)
- EncodingError: a payload cannot be expressed for the chosen command
- ImageLoadError: the image source could not produce pixel data
"""

from __future__ import annotations

from typing import Optional


class PrintError(Exception):
    """Base class for all print pipeline errors."""


class TransportError(PrintError):
    """Base class for transport failures."""


class TransportOpenError(TransportError):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    BUSY = "busy"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"

    def __init__(self, message: str, reason: str = UNKNOWN, device: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.device = device


class TransportWriteError(TransportError):
    """Raised when bytes could not be handed to the device."""


class DeviceNotOpen(TransportWriteError):
    def __init__(self, message: str = "Device not open") -> None:
        super().__init__(message)


class CloseError(TransportError):
    """Raised when a transport could not be closed cleanly."""


class EncodingError(PrintError, ValueError):
    """Raised when a payload is invalid for the requested ESC/POS command."""


class ImageLoadError(PrintError):
    """Raised when an image cannot be loaded or converted to raster data."""


__all__ = [
    "CloseError",
    "DeviceNotOpen",
    "EncodingError",
    "ImageLoadError",
    "PrintError",
    "TransportError",
    "TransportOpenError",
    "TransportWriteError",
]
