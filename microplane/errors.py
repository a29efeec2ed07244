"""Exception taxonomy shared by every checker, parser, reader and writer.

Every failure raised by microplane itself is a :class:`FormatError` whose
``kind`` attribute names the taxonomy entry. Failures of the underlying
byte stream (``OSError``, ``EOFError``) are never wrapped and reach the
caller unchanged.
"""

from __future__ import annotations

from .enums import ErrorKind


class FormatError(Exception):
    """Base class for all format-level failures."""

    kind: ErrorKind = ErrorKind.UNSUPPORTED_FORMAT


class UnsupportedFormatError(FormatError):
    """Raised when content is not recognized by any checker or parser."""

    kind = ErrorKind.UNSUPPORTED_FORMAT


class UnsupportedVersionError(FormatError):
    """Raised when a file declares a format version newer than supported."""

    kind = ErrorKind.UNSUPPORTED_VERSION


class MissingCompanionFileError(FormatError):
    """Raised when a required header or pixel companion file is absent."""

    kind = ErrorKind.MISSING_COMPANION_FILE


class CorruptHeaderError(FormatError):
    """Raised for malformed, truncated or missing structural header fields."""

    kind = ErrorKind.CORRUPT_HEADER


class UnsupportedDimensionalityError(FormatError):
    """Raised when axis count or pixel kind cannot be represented."""

    kind = ErrorKind.UNSUPPORTED_DIMENSIONALITY


class UnsupportedCompressionError(FormatError):
    """Raised for unknown compression codes or preset-dictionary streams."""

    kind = ErrorKind.UNSUPPORTED_COMPRESSION


class CorruptDataError(FormatError):
    """Raised when pixel data is truncated or cannot be fully decoded."""

    kind = ErrorKind.CORRUPT_DATA


class IndexOutOfRangeError(FormatError, IndexError):
    """Raised when an image, plane or region index lies outside the image."""

    kind = ErrorKind.INDEX_OUT_OF_RANGE


class BufferTooSmallError(FormatError, ValueError):
    """Raised when a caller-supplied buffer cannot hold the requested region."""

    kind = ErrorKind.BUFFER_TOO_SMALL


class ConfigurationError(FormatError):
    """Raised when a reader or writer is used in a state or mode it does not support."""

    kind = ErrorKind.CONFIGURATION
