from .config import DEFAULT_SETTINGS, IOSettings
from .enums import Axis, ErrorKind, PixelKind
from .errors import (
    BufferTooSmallError,
    ConfigurationError,
    CorruptDataError,
    CorruptHeaderError,
    FormatError,
    IndexOutOfRangeError,
    MissingCompanionFileError,
    UnsupportedCompressionError,
    UnsupportedDimensionalityError,
    UnsupportedFormatError,
    UnsupportedVersionError,
)
from .metadata import AcquisitionMetadata, ImageMetadata, Metadata
from .metatable import MetaTable
from .pipeline import ImageFile, create_writer, open_image
from .plugins import IcsFormat, ObfFormat, lookup, lookup_writer
from .stream import RandomAccessStream

__all__ = [
    "Axis",
    "PixelKind",
    "ErrorKind",
    "IOSettings",
    "DEFAULT_SETTINGS",
    "MetaTable",
    "ImageMetadata",
    "AcquisitionMetadata",
    "Metadata",
    "RandomAccessStream",
    "ImageFile",
    "open_image",
    "create_writer",
    "lookup",
    "lookup_writer",
    "IcsFormat",
    "ObfFormat",
    "FormatError",
    "UnsupportedFormatError",
    "UnsupportedVersionError",
    "MissingCompanionFileError",
    "CorruptHeaderError",
    "UnsupportedDimensionalityError",
    "UnsupportedCompressionError",
    "CorruptDataError",
    "IndexOutOfRangeError",
    "BufferTooSmallError",
    "ConfigurationError",
]
