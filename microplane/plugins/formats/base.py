"""
Base classes for format plugins.

This module defines the four cooperating roles every format implements and
the ``Format`` plugin that bundles them for the registry:

- ``Checker``: answers whether a file belongs to the format
- ``Parser``: turns a header stream into :class:`~microplane.metadata.Metadata`
- ``Reader``: serves rectangular regions of pixel planes
- ``Writer``: accepts rectangular regions of pixel planes

Region and buffer validation is shared through :mod:`microplane.tools`, so
concrete readers and writers only implement the byte movement.
"""

from __future__ import annotations

import os
import struct
from typing import List, Optional, Sequence, Tuple, Type, Union

import numpy as np
import pluggy

from ...config import DEFAULT_SETTINGS, IOSettings
from ...enums import PixelKind
from ...errors import ConfigurationError, UnsupportedDimensionalityError
from ...logging import get_logger
from ...metadata import Metadata
from ...stream import RandomAccessStream
from ... import tools

hookimpl = pluggy.HookimplMarker("microplane")

logger = get_logger(__name__)

Source = Union[str, "os.PathLike[str]", RandomAccessStream]


def _suffix(path: str) -> str:
    return os.path.splitext(os.fspath(path))[1].lstrip(".").lower()


class Checker:
    """
    Decides whether a file belongs to a format.

    Subclasses implement :meth:`check_content`; the suffix flags describe how
    a matching file name composes with the content check in :meth:`matches`.

    Attributes:
        suffix_sufficient: A matching suffix alone identifies the format
        suffix_necessary: Files without a matching suffix are rejected
            without inspecting their content
    """

    suffix_sufficient = True
    suffix_necessary = True

    def __init__(self, fmt: "Format"):
        self.format = fmt

    def check_content(self, stream: RandomAccessStream) -> bool:
        """Inspect the stream (positioned at 0) and return True on a match."""
        return False

    def is_format(self, stream: RandomAccessStream) -> bool:
        """
        Run the content check without moving the stream.

        Truncated or unreadable content counts as "not this format".
        """
        position = stream.tell()
        try:
            stream.seek(0)
            return bool(self.check_content(stream))
        except (EOFError, OSError, struct.error, UnicodeDecodeError) as err:
            logger.debug(f"{self.format.name} probe of {stream.name} failed: {err}")
            return False
        finally:
            stream.seek(position)

    def matches(self, path, stream: Optional[RandomAccessStream] = None) -> bool:
        """
        Combine the suffix flags with the content check for ``path``.

        Args:
            path: File name to judge
            stream: Open stream over the file; opened from ``path`` when
                omitted and a content check is needed
        """
        has_suffix = self.format.has_suffix(path)
        if self.suffix_sufficient and has_suffix:
            return True
        if self.suffix_necessary and not has_suffix:
            return False
        if stream is not None:
            return self.is_format(stream)
        try:
            with RandomAccessStream.from_path(path) as opened:
                return self.is_format(opened)
        except OSError:
            return False


class Parser:
    """
    Turns a header stream (and optional companion streams) into metadata.

    Subclasses set :attr:`metadata_class` and implement :meth:`typed_parse`.
    """

    metadata_class: Type[Metadata] = Metadata

    def __init__(self, fmt: "Format"):
        self.format = fmt
        self.settings: IOSettings = fmt.settings

    def parse(
        self,
        stream: RandomAccessStream,
        companions: Optional[Sequence[RandomAccessStream]] = None,
    ) -> Metadata:
        """
        Parse ``stream`` into a new metadata object.

        Args:
            stream: Header stream
            companions: Already opened companion streams, for formats that
                split header and pixels across files

        Returns:
            Populated metadata of the format's metadata class
        """
        metadata = self.metadata_class()
        metadata.format_name = self.format.name
        metadata.dataset_name = stream.name
        stream.seek(0)
        self.typed_parse(stream, metadata, list(companions or ()))
        return metadata

    def parse_path(self, path) -> Metadata:
        """Open ``path``, parse it and close the header stream."""
        with RandomAccessStream.from_path(path) as stream:
            return self.parse(stream)

    def typed_parse(
        self,
        stream: RandomAccessStream,
        metadata: Metadata,
        companions: List[RandomAccessStream],
    ) -> None:
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement typed_parse method"
        )

    def close(self) -> None:
        pass


class Reader:
    """
    Serves rectangular pixel regions of the planes of a parsed dataset.

    A reader is bound to one source at a time and keeps cursor state
    between calls, so an instance must not be shared between threads.
    Subclasses implement :meth:`open_region` and may override
    :meth:`open_source` and :meth:`reset`.
    """

    def __init__(self, fmt: "Format"):
        self.format = fmt
        self.settings: IOSettings = fmt.settings
        self.metadata: Optional[Metadata] = None
        self.stream: Optional[RandomAccessStream] = None
        self._owns_stream = False

    def set_source(self, source: Source, metadata: Optional[Metadata] = None) -> None:
        """
        Bind the reader to a file or stream.

        Args:
            source: Path or open stream. A stream stays owned by the caller.
            metadata: Previously parsed metadata; parsed from ``source`` when
                omitted
        """
        self.close()
        if metadata is None:
            parser = self.format.create_parser()
            try:
                if isinstance(source, RandomAccessStream):
                    metadata = parser.parse(source)
                else:
                    metadata = parser.parse_path(source)
            finally:
                parser.close()
        self.metadata = metadata
        if isinstance(source, RandomAccessStream):
            self.stream = source
            self._owns_stream = False
        else:
            self.stream = self.open_source(os.fspath(source), metadata)
            self._owns_stream = True

    def open_source(self, path: str, metadata: Metadata) -> RandomAccessStream:
        """Open the stream that holds the pixel data of ``path``."""
        return RandomAccessStream.from_path(path)

    def _check_bound(self) -> None:
        if self.metadata is None or self.stream is None:
            raise ConfigurationError("Reader has no source; call set_source first")

    def read_region(
        self,
        image_index: int,
        plane_index: int,
        x: int = 0,
        y: int = 0,
        w: Optional[int] = None,
        h: Optional[int] = None,
        buf: Optional[bytearray] = None,
    ) -> bytearray:
        """
        Read a rectangular region of one plane.

        Args:
            image_index: Image within the dataset
            plane_index: Plane within the image
            x, y: Upper-left corner of the region
            w, h: Region size (default: the rest of the plane)
            buf: Destination buffer; allocated when omitted

        Returns:
            The buffer holding the region bytes in storage order

        Raises:
            IndexOutOfRangeError: If the image, plane or region is invalid
            BufferTooSmallError: If ``buf`` cannot hold the region
        """
        self._check_bound()
        image = self.metadata.get(image_index)
        x, y, w, h = tools.resolve_region(image, x, y, w, h)
        tools.validate_request(
            image, plane_index, x, y, w, h, None if buf is None else len(buf)
        )
        if buf is None:
            buf = bytearray(tools.region_size(image, w, h))
        self.open_region(image_index, plane_index, buf, x, y, w, h)
        return buf

    def read_array(
        self,
        image_index: int,
        plane_index: int,
        x: int = 0,
        y: int = 0,
        w: Optional[int] = None,
        h: Optional[int] = None,
    ) -> np.ndarray:
        """Read a region as a native byte order numpy array."""
        self._check_bound()
        image = self.metadata.get(image_index)
        x, y, w, h = tools.resolve_region(image, x, y, w, h)
        buf = self.read_region(image_index, plane_index, x, y, w, h)
        return tools.to_array(buf, image, w, h)

    def open_region(
        self,
        image_index: int,
        plane_index: int,
        buf: bytearray,
        x: int,
        y: int,
        w: int,
        h: int,
    ) -> None:
        """Fill ``buf`` with an already validated region."""
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement open_region method"
        )

    def reset(self) -> None:
        """Drop cached buffers and decoder state."""

    def close(self) -> None:
        """Release the bound stream and all cursor state. Safe to repeat."""
        self.reset()
        if self.stream is not None and self._owns_stream:
            self.stream.close()
        self.stream = None
        self._owns_stream = False
        self.metadata = None

    def __enter__(self) -> "Reader":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class Writer:
    """
    Accepts rectangular pixel regions and stores them in a destination.

    Every region is validated against the bound metadata before any byte
    is written. Subclasses implement :meth:`save_region` and may override
    :meth:`setup_dest`, :meth:`finish` and :meth:`pixel_kinds`.

    Attributes:
        compression_types: Compression names accepted by
            :meth:`set_compression`
        initialized: Per image, per plane flags marking planes written to
    """

    compression_types: Tuple[str, ...] = ("Uncompressed",)

    def __init__(self, fmt: "Format"):
        self.format = fmt
        self.settings: IOSettings = fmt.settings
        self.metadata: Optional[Metadata] = None
        self.stream: Optional[RandomAccessStream] = None
        self._owns_stream = False
        self.compression = self.settings.default_compression
        self.sequential = False
        self.initialized: List[List[bool]] = []

    def set_metadata(self, metadata: Metadata) -> None:
        """Bind the metadata to write; closes a previously bound destination."""
        if self.stream is not None:
            self.close()
        metadata.validate()
        self.metadata = metadata

    def set_dest(self, dest: Source) -> None:
        """
        Bind the destination path or stream.

        If the format rejects the metadata, the destination is released
        again (a stream opened from a path is closed) and the writer is
        left unbound.

        Raises:
            ConfigurationError: If no metadata has been set, or the format
                cannot store it
        """
        if self.metadata is None:
            raise ConfigurationError("Writer has no metadata; call set_metadata first")
        if self.stream is not None:
            self._release()
        if isinstance(dest, RandomAccessStream):
            self.stream = dest
            self._owns_stream = False
        else:
            self.stream = self.open_dest(os.fspath(dest))
            self._owns_stream = True
        self.initialized = [
            [False] * image.plane_count for image in self.metadata.images
        ]
        try:
            self.setup_dest()
        except Exception:
            # nothing was set up, so there is nothing to finish
            if self._owns_stream:
                self.stream.close()
            self.stream = None
            self._owns_stream = False
            self.initialized = []
            raise

    def open_dest(self, path: str) -> RandomAccessStream:
        return RandomAccessStream.from_path(path, "wb")

    def set_compression(self, compression: str) -> None:
        if compression not in self.compression_types:
            raise ConfigurationError(
                f"Compression {compression!r} is not one of {self.compression_types}"
            )
        self.compression = compression

    def set_write_sequentially(self, sequential: bool) -> None:
        self.sequential = bool(sequential)

    def pixel_kinds(self, compression: Optional[str] = None) -> Tuple[PixelKind, ...]:
        """Pixel kinds supported with ``compression`` (default: all kinds)."""
        return tuple(PixelKind)

    def write_region(
        self,
        image_index: int,
        plane_index: int,
        buf,
        x: int = 0,
        y: int = 0,
        w: Optional[int] = None,
        h: Optional[int] = None,
    ) -> None:
        """
        Write a rectangular region of one plane.

        Args:
            image_index: Image within the dataset
            plane_index: Plane within the image
            buf: Region bytes in storage order, or a numpy array converted to
                storage order
            x, y: Upper-left corner of the region
            w, h: Region size (default: the rest of the plane)

        Raises:
            ConfigurationError: If metadata or destination are not bound
            IndexOutOfRangeError: If the image, plane or region is invalid
            BufferTooSmallError: If ``buf`` does not cover the region
            UnsupportedDimensionalityError: If the pixel kind is not
                supported with the active compression
        """
        if self.metadata is None or self.stream is None:
            raise ConfigurationError(
                "Writer is not bound; call set_metadata and set_dest first"
            )
        image = self.metadata.get(image_index)
        if isinstance(buf, np.ndarray):
            buf = tools.from_array(buf, image)
        x, y, w, h = tools.resolve_region(image, x, y, w, h)
        tools.validate_request(image, plane_index, x, y, w, h, len(buf))
        if image.pixel_kind not in self.pixel_kinds(self.compression):
            raise UnsupportedDimensionalityError(
                f"Pixel kind {image.pixel_kind.value} is not supported with"
                f" {self.compression} compression"
            )
        self.save_region(image_index, plane_index, memoryview(buf), x, y, w, h)
        self.initialized[image_index][plane_index] = True

    def write_plane(self, image_index: int, plane_index: int, buf) -> None:
        """Write one whole plane."""
        self.write_region(image_index, plane_index, buf)

    def save_region(
        self,
        image_index: int,
        plane_index: int,
        buf: memoryview,
        x: int,
        y: int,
        w: int,
        h: int,
    ) -> None:
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement save_region method"
        )

    def setup_dest(self) -> None:
        """Prepare a freshly bound destination."""

    def finish(self) -> None:
        """Complete the destination before it is released."""

    def _release(self) -> None:
        try:
            self.finish()
        finally:
            if self._owns_stream:
                self.stream.close()
            self.stream = None
            self._owns_stream = False

    def close(self) -> None:
        """Finish and release the destination. Safe to repeat."""
        if self.stream is not None:
            self._release()
        self.initialized = []

    def __enter__(self) -> "Writer":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class Format:
    """
    A file format plugin bundling its checker, parser, reader and writer.

    Instances are registered on the microplane plugin manager; their hook
    implementations let the registry identify the format for a path.

    Attributes:
        name: Human readable format name
        suffixes: Lower-case file name suffixes without dot
    """

    name: str = ""
    suffixes: Tuple[str, ...] = ()
    checker_class: Type[Checker] = Checker
    parser_class: Type[Parser] = Parser
    reader_class: Type[Reader] = Reader
    writer_class: Optional[Type[Writer]] = None

    def __init__(self, settings: Optional[IOSettings] = None):
        self.settings = settings or DEFAULT_SETTINGS

    def has_suffix(self, path) -> bool:
        return _suffix(path) in self.suffixes

    def create_checker(self) -> Checker:
        return self.checker_class(self)

    def create_parser(self) -> Parser:
        return self.parser_class(self)

    def create_reader(self) -> Reader:
        return self.reader_class(self)

    def create_writer(self) -> Writer:
        if self.writer_class is None:
            raise ConfigurationError(f"{self.name} has no writer")
        return self.writer_class(self)

    @hookimpl
    def format_name(self) -> str:
        return self.name

    @hookimpl
    def format_suffixes(self) -> List[str]:
        return list(self.suffixes)

    @hookimpl
    def identify_format(self, path: str, stream: Optional[RandomAccessStream]):
        return self if self.create_checker().matches(path, stream) else None

    @hookimpl
    def identify_writer_format(self, path: str):
        if self.writer_class is not None and self.has_suffix(path):
            return self
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
