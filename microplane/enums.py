"""Enumeration classes for microplane type definitions."""

from __future__ import annotations

from enum import Enum, auto

import numpy as np


class Axis(Enum):
    """Addressable dimensions of an image.

    Attributes:
        X: Columns of a plane
        Y: Rows of a plane
        Z: Focal depth
        CHANNEL: Spectral channel
        TIME: Time point
    """

    X = "x"
    Y = "y"
    Z = "z"
    CHANNEL = "c"
    TIME = "t"

    @property
    def letter(self) -> str:
        """Upper-case letter used in dimension order strings (e.g. ``XYCZT``)."""
        return self.value.upper()


#: Canonical axis order used for dimension order strings.
CANONICAL_AXES = (Axis.X, Axis.Y, Axis.Z, Axis.CHANNEL, Axis.TIME)


class PixelKind(Enum):
    """Numeric kind of a single pixel sample.

    The value is the numpy type name; bit depth, signedness and the numpy
    dtype are derived from it.
    """

    INT8 = "int8"
    UINT8 = "uint8"
    INT16 = "int16"
    UINT16 = "uint16"
    INT32 = "int32"
    UINT32 = "uint32"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def bytes_per_pixel(self) -> int:
        return np.dtype(self.value).itemsize

    @property
    def bits_per_pixel(self) -> int:
        return self.bytes_per_pixel * 8

    @property
    def signed(self) -> bool:
        return np.dtype(self.value).kind in "if"

    @property
    def floating_point(self) -> bool:
        return np.dtype(self.value).kind == "f"

    def dtype(self, little_endian: bool = True) -> np.dtype:
        """Return the numpy dtype for this kind in the given byte order."""
        return np.dtype(self.value).newbyteorder("<" if little_endian else ">")

    @classmethod
    def from_integer(cls, bits: int, signed: bool) -> "PixelKind":
        """Look up the integer kind for a bit depth of 8, 16 or 32.

        Raises:
            KeyError: If no integer kind has that bit depth
        """
        if bits not in (8, 16, 32):
            raise KeyError(bits)
        prefix = "int" if signed else "uint"
        return cls(f"{prefix}{bits}")

    @classmethod
    def from_float(cls, bits: int) -> "PixelKind":
        """Look up the floating point kind for a bit depth of 32 or 64.

        Raises:
            KeyError: If no floating point kind has that bit depth
        """
        if bits not in (32, 64):
            raise KeyError(bits)
        return cls(f"float{bits}")


class ErrorKind(Enum):
    """Classification carried by every :class:`~microplane.errors.FormatError`."""

    UNSUPPORTED_FORMAT = auto()
    UNSUPPORTED_VERSION = auto()
    MISSING_COMPANION_FILE = auto()
    CORRUPT_HEADER = auto()
    UNSUPPORTED_DIMENSIONALITY = auto()
    UNSUPPORTED_COMPRESSION = auto()
    CORRUPT_DATA = auto()
    INDEX_OUT_OF_RANGE = auto()
    BUFFER_TOO_SMALL = auto()
    CONFIGURATION = auto()
