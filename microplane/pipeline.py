"""
High-level entry points composing checker, parser, reader and writer.

Examples:
    >>> from microplane import open_image
    >>> with open_image("cells.ics") as image_file:
    ...     plane = image_file.read_plane(0, 0)
    ...     stack = image_file.to_dask(0)
"""

from __future__ import annotations

import os
import threading
from typing import Optional, Tuple

import dask
import dask.array as da
import numpy as np

from .config import IOSettings
from .logging import get_logger
from .metadata import ImageMetadata, Metadata
from .plugins.formats.base import Format, Reader, Writer
from .plugins.plugin_manager import lookup, lookup_writer

logger = get_logger(__name__)


def _with_settings(fmt: Format, settings: Optional[IOSettings]) -> Format:
    if settings is None or settings is fmt.settings:
        return fmt
    return type(fmt)(settings)


def plane_shape(image: ImageMetadata) -> Tuple[int, ...]:
    """Shape of one plane as returned by :meth:`ImageFile.read_plane`."""
    samples = image.rgb_channel_count
    if samples == 1:
        return (image.size_y, image.size_x)
    if image.interleaved:
        return (image.size_y, image.size_x, samples)
    return (samples, image.size_y, image.size_x)


class ImageFile:
    """
    An image file opened for reading.

    The matching format is found through the format registry unless given.
    The underlying reader keeps decoder state, so every read goes through
    one lock; an ``ImageFile`` may be shared by the threads computing its
    dask arrays.

    Args:
        path: File to open
        fmt: Format to use instead of registry lookup
        settings: Settings for the format (default: the format's own)
        pm: Plugin manager used for lookup (default: the global one)
    """

    def __init__(
        self,
        path,
        fmt: Optional[Format] = None,
        settings: Optional[IOSettings] = None,
        pm=None,
    ):
        self.path = os.fspath(path)
        if fmt is None:
            fmt = lookup(self.path, pm=pm)
        self.format = _with_settings(fmt, settings)
        self._lock = threading.Lock()
        self.reader: Optional[Reader] = self.format.create_reader()
        try:
            self.reader.set_source(self.path)
        except BaseException:
            self.reader.close()
            raise
        self.metadata: Metadata = self.reader.metadata
        logger.info(
            f"Opened {self.path} as {self.format.name} with"
            f" {self.metadata.image_count} image(s)"
        )

    @property
    def image_count(self) -> int:
        return self.metadata.image_count

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
        """Read region bytes in storage order; see :meth:`Reader.read_region`."""
        with self._lock:
            return self.reader.read_region(image_index, plane_index, x, y, w, h, buf)

    def read_plane(self, image_index: int, plane_index: int) -> np.ndarray:
        """Read one whole plane as a native byte order numpy array."""
        with self._lock:
            return self.reader.read_array(image_index, plane_index)

    def to_dask(self, image_index: int = 0) -> da.Array:
        """
        Return the planes of one image as a lazy dask array.

        The array has shape ``(planes,) + plane_shape`` with one chunk per
        plane.
        """
        image = self.metadata.get(image_index)
        shape = plane_shape(image)
        dtype = image.dtype.newbyteorder("=")
        read = dask.delayed(self.read_plane, pure=True)
        planes = [
            da.from_delayed(read(image_index, plane), shape=shape, dtype=dtype)
            for plane in range(image.plane_count)
        ]
        return da.stack(planes, axis=0)

    def close(self) -> None:
        """Release the reader. Safe to call more than once."""
        if self.reader is not None:
            with self._lock:
                self.reader.close()
            self.reader = None
            logger.info(f"Closed {self.path}")

    def __enter__(self) -> "ImageFile":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ImageFile(path={self.path!r}, format={self.format.name!r})"


def open_image(path, fmt: Optional[Format] = None, settings: Optional[IOSettings] = None, pm=None) -> ImageFile:
    """Open ``path`` for reading; see :class:`ImageFile`."""
    return ImageFile(path, fmt=fmt, settings=settings, pm=pm)


def create_writer(
    path,
    metadata: Metadata,
    compression: Optional[str] = None,
    sequential: bool = False,
    settings: Optional[IOSettings] = None,
    pm=None,
) -> Writer:
    """
    Create a writer bound to ``path`` for ``metadata``.

    The format is chosen by the suffix of ``path``.

    Args:
        path: Destination file
        metadata: Description of the images to write
        compression: Compression name (default: ``settings.default_compression``)
        sequential: Promise to write planes in order
        settings: Settings for the format
        pm: Plugin manager used for lookup

    Returns:
        A bound writer; close it (or use it as a context manager) to
        complete the file
    """
    fmt = _with_settings(lookup_writer(path, pm=pm), settings)
    writer = fmt.create_writer()
    writer.set_metadata(metadata)
    if compression is not None:
        writer.set_compression(compression)
    writer.set_write_sequentially(sequential)
    writer.set_dest(path)
    logger.info(f"Writing {os.fspath(path)} as {fmt.name}")
    return writer
