"""
Exception types for the tabletop session core.

Record-level errors (one token, one embedded asset) are recovered where they
are raised; header-level errors abort a load and leave the world untouched.
"""


class VttError(Exception):
    """Base exception for the tabletop session core."""


class SaveIOError(VttError, OSError):
    """Raised when a save file cannot be opened, read or written."""


class FormatError(VttError):
    """Raised for a bad magic number or a truncated/malformed structural field."""


class DecodeError(VttError):
    """Raised when bytes are not a decodable raster image."""


class CapacityError(VttError):
    """Raised when a configured token, drawing or asset limit would be exceeded."""


class SizeSanityError(FormatError):
    """Raised when an embedded blob declares a non-positive or oversized length."""
