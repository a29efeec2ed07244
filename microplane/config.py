"""Tunable settings shared by the format plugins and the pipeline."""

from __future__ import annotations

from typing import Tuple

from attrs import define, field

#: Date patterns tried, in order, for ICS ``history date`` values.
DEFAULT_DATE_FORMATS: Tuple[str, ...] = (
    "%A, %B %d, %Y %H:%M:%S",
    "%a %d %B %Y %H:%M:%S",
    "%a %b %d %H:%M:%S %Y",
    "%a %d %b %Y %H:%M:%S %Z",
)


@define(frozen=True)
class IOSettings:
    """Settings for reading and writing.

    Attributes:
        buffer_size: Number of compressed bytes fed to a streaming
            decompressor per read
        date_formats: ``strptime`` patterns tried in order for header dates
        group_files: Resolve companion files when parsing multi-file formats.
            When False, a header without its pixel companion still parses.
        eager_decompression: Allow whole-payload decompression at parse time
        default_compression: Compression a new writer starts with
    """

    buffer_size: int = field(default=8192)
    date_formats: Tuple[str, ...] = field(default=DEFAULT_DATE_FORMATS, converter=tuple)
    group_files: bool = True
    eager_decompression: bool = True
    default_compression: str = "Uncompressed"

    @buffer_size.validator
    def _check_buffer_size(self, attribute, value):
        if value <= 0:
            raise ValueError(f"buffer_size must be positive, got {value}")


DEFAULT_SETTINGS = IOSettings()
