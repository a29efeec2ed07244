"""Shared plane geometry helpers used by every reader and writer.

The checks here are the single implementation of region and buffer
validation: every concrete reader and writer calls them before touching
its stream, so a failed check never performs I/O.
"""

from __future__ import annotations

from typing import Optional, Tuple, Union

import numpy as np

from .errors import BufferTooSmallError, CorruptDataError, IndexOutOfRangeError
from .metadata import ImageMetadata
from .stream import RandomAccessStream

Buffer = Union[bytearray, memoryview]


def check_plane_number(image: ImageMetadata, plane_index: int) -> None:
    """Raise IndexOutOfRangeError unless 0 <= plane_index < plane count."""
    planes = image.plane_count
    if plane_index < 0:
        raise IndexOutOfRangeError(f"Plane index:{plane_index} must be >= 0")
    if plane_index >= planes:
        raise IndexOutOfRangeError(f"Plane index:{plane_index} must be < {planes}")


def check_region(image: ImageMetadata, x: int, y: int, w: int, h: int) -> None:
    """Raise IndexOutOfRangeError unless the rectangle lies inside a plane."""
    size_x, size_y = image.size_x, image.size_y
    if x < 0:
        raise IndexOutOfRangeError(f"X:{x} must be >= 0")
    if y < 0:
        raise IndexOutOfRangeError(f"Y:{y} must be >= 0")
    if w <= 0:
        raise IndexOutOfRangeError(f"Width:{w} must be > 0")
    if h <= 0:
        raise IndexOutOfRangeError(f"Height:{h} must be > 0")
    if x + w > size_x:
        raise IndexOutOfRangeError(f"(w:{w} + x:{x}) must be <= {size_x}")
    if y + h > size_y:
        raise IndexOutOfRangeError(f"(h:{h} + y:{y}) must be <= {size_y}")


def region_size(image: ImageMetadata, w: int, h: int) -> int:
    """Number of bytes needed to hold a w x h region with all RGB samples."""
    return image.bytes_per_pixel * w * h * max(1, image.rgb_channel_count)


def check_buffer_size(image: ImageMetadata, length: int, w: int, h: int) -> None:
    minimum = region_size(image, w, h)
    if length < minimum:
        raise BufferTooSmallError(
            f"Buffer is too small; expected {minimum} bytes, got {length} bytes."
        )


def resolve_region(
    image: ImageMetadata,
    x: int = 0,
    y: int = 0,
    w: Optional[int] = None,
    h: Optional[int] = None,
) -> Tuple[int, int, int, int]:
    """Fill in a missing width/height with the remainder of the plane."""
    if w is None:
        w = image.size_x - x
    if h is None:
        h = image.size_y - y
    return x, y, w, h


def validate_request(
    image: ImageMetadata,
    plane_index: int,
    x: int,
    y: int,
    w: int,
    h: int,
    buf_length: Optional[int] = None,
) -> None:
    """Run plane, region and (optionally) buffer checks in that order."""
    check_plane_number(image, plane_index)
    check_region(image, x, y, w, h)
    if buf_length is not None:
        check_buffer_size(image, buf_length, w, h)


def read_plane(
    stream: RandomAccessStream,
    image: ImageMetadata,
    plane_offset: int,
    x: int,
    y: int,
    w: int,
    h: int,
    buf: Buffer,
) -> Buffer:
    """Read a region of an uncompressed plane stored row-major at plane_offset.

    One seek and one read are issued per row; pixels carry all RGB samples.
    """
    pixel = image.bytes_per_pixel * image.rgb_channel_count
    row_stride = image.size_x * pixel
    row_length = w * pixel
    for row in range(h):
        stream.seek(plane_offset + (y + row) * row_stride + x * pixel)
        stream.read_into(buf, row * row_length, row_length)
    return buf


def copy_region(
    source: Union[bytes, bytearray, memoryview],
    plane_offset: int,
    image: ImageMetadata,
    x: int,
    y: int,
    w: int,
    h: int,
    buf: Buffer,
) -> Buffer:
    """Copy a region of an in-memory plane starting at plane_offset into buf.

    A region spanning whole rows is copied in one piece, otherwise one row
    at a time.

    Raises:
        CorruptDataError: If source ends before the last requested row
    """
    pixel = image.bytes_per_pixel * image.rgb_channel_count
    row_stride = image.size_x * pixel
    row_length = w * pixel
    end = plane_offset + (y + h - 1) * row_stride + x * pixel + row_length
    if len(source) < end:
        raise CorruptDataError(f"Pixel data ends at byte {len(source)}; region needs {end}")
    if x == 0 and w == image.size_x:
        start = plane_offset + y * row_stride
        buf[: h * row_length] = source[start:start + h * row_length]
    else:
        for row in range(h):
            start = plane_offset + (y + row) * row_stride + x * pixel
            buf[row * row_length:(row + 1) * row_length] = source[start:start + row_length]
    return buf


def flip_rows(buf: Buffer, row_length: int, h: int) -> Buffer:
    """Mirror the first h rows of buf vertically, in place."""
    scratch = bytearray(row_length)
    for top in range(h // 2):
        bottom = h - 1 - top
        upper = slice(top * row_length, (top + 1) * row_length)
        lower = slice(bottom * row_length, (bottom + 1) * row_length)
        scratch[:] = buf[upper]
        buf[upper] = buf[lower]
        buf[lower] = scratch
    return buf


def to_array(buf: Buffer, image: ImageMetadata, w: int, h: int) -> np.ndarray:
    """Interpret region bytes as a native-order numpy array.

    Returns:
        Array of shape (h, w), or (h, w, samples) for interleaved RGB data
        and (samples, h, w) for planar RGB data
    """
    samples = image.rgb_channel_count
    count = w * h * samples
    data = np.frombuffer(bytes(buf[: count * image.bytes_per_pixel]), dtype=image.dtype)
    if samples == 1:
        shape = (h, w)
    elif image.interleaved:
        shape = (h, w, samples)
    else:
        shape = (samples, h, w)
    return data.reshape(shape).astype(image.dtype.newbyteorder("="))


def from_array(array: np.ndarray, image: ImageMetadata) -> bytes:
    """Serialize an array into storage byte order for a writer."""
    return np.ascontiguousarray(array, dtype=image.dtype).tobytes()
