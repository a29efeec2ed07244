"""Tests for the shared region validation and copy helpers."""

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from microplane import (
    BufferTooSmallError,
    CorruptDataError,
    ImageMetadata,
    IndexOutOfRangeError,
    PixelKind,
    RandomAccessStream,
)
from microplane import tools


@pytest.fixture
def image():
    return ImageMetadata.create(8, 6, PixelKind.UINT16, size_z=3)


@pytest.mark.parametrize(
    "x,y,w,h,message",
    [
        (-1, 0, 2, 2, "X:-1"),
        (0, -1, 2, 2, "Y:-1"),
        (0, 0, 0, 2, "Width:0"),
        (0, 0, 2, 0, "Height:0"),
        (7, 0, 2, 2, r"\(w:2 \+ x:7\)"),
        (0, 5, 2, 2, r"\(h:2 \+ y:5\)"),
    ],
)
def test_check_region_rejects(image, x, y, w, h, message):
    with pytest.raises(IndexOutOfRangeError, match=message):
        tools.check_region(image, x, y, w, h)


def test_check_plane_number(image):
    tools.check_plane_number(image, 2)
    with pytest.raises(IndexOutOfRangeError):
        tools.check_plane_number(image, 3)
    with pytest.raises(IndexOutOfRangeError):
        tools.check_plane_number(image, -1)


def test_buffer_size_includes_rgb_samples():
    rgb = ImageMetadata.create(4, 4, PixelKind.UINT16, size_c=3, rgb=True, interleaved=True)
    assert tools.region_size(rgb, 2, 2) == 2 * 2 * 2 * 3
    with pytest.raises(BufferTooSmallError, match="expected 24 bytes, got 23"):
        tools.check_buffer_size(rgb, 23, 2, 2)


def test_resolve_region_defaults_to_rest_of_plane(image):
    assert tools.resolve_region(image) == (0, 0, 8, 6)
    assert tools.resolve_region(image, 3, 2) == (3, 2, 5, 4)


def test_read_plane_and_copy_region_agree(image):
    planes = np.arange(3 * 6 * 8, dtype="<u2").reshape(3, 6, 8)
    data = planes.tobytes()
    stream = RandomAccessStream.from_bytes(data)

    for x, y, w, h in [(0, 0, 8, 6), (2, 1, 3, 4), (0, 2, 8, 2), (7, 5, 1, 1)]:
        size = tools.region_size(image, w, h)
        streamed = tools.read_plane(stream, image, image.plane_size, x, y, w, h, bytearray(size))
        copied = tools.copy_region(data, image.plane_size, image, x, y, w, h, bytearray(size))
        assert streamed == copied
        assert_array_equal(tools.to_array(copied, image, w, h), planes[1, y:y + h, x:x + w])


@pytest.mark.parametrize("x,w", [(0, 8), (2, 3)])
def test_copy_region_short_source(image, x, w):
    """A payload that stops inside the second plane only serves its first rows."""
    data = np.arange(68, dtype="<u2").tobytes()
    size = tools.region_size(image, w, 2)
    with pytest.raises(CorruptDataError, match="ends at byte 136"):
        tools.copy_region(data, image.plane_size, image, x, 4, w, 2, bytearray(size))

    copied = tools.copy_region(data, image.plane_size, image, x, 0, w, 2, bytearray(size))
    rows = np.frombuffer(data[image.plane_size:image.plane_size + 32], dtype="<u2").reshape(2, 8)
    assert_array_equal(tools.to_array(copied, image, w, 2), rows[:, x:x + w])


def test_flip_rows_in_place():
    buf = bytearray(b"aabbcc")
    tools.flip_rows(buf, 2, 3)
    assert bytes(buf) == b"ccbbaa"


def test_to_array_native_order_and_shapes():
    big = ImageMetadata.create(2, 1, PixelKind.UINT16, little_endian=False)
    array = tools.to_array(b"\x01\x00\x00\x02", big, 2, 1)
    assert array.dtype.isnative
    assert array.tolist() == [[256, 2]]
    assert tools.from_array(array, big) == b"\x01\x00\x00\x02"

    interleaved = ImageMetadata.create(2, 1, PixelKind.UINT8, size_c=3, rgb=True, interleaved=True)
    assert tools.to_array(bytes(range(6)), interleaved, 2, 1).shape == (1, 2, 3)
    planar = ImageMetadata.create(2, 1, PixelKind.UINT8, size_c=3, rgb=True)
    assert tools.to_array(bytes(range(6)), planar, 2, 1).shape == (3, 1, 2)
