"""Tests for enumeration classes."""

import numpy as np
import pytest

from microplane.enums import CANONICAL_AXES, Axis, ErrorKind, PixelKind


def test_axis_enum():
    """Test Axis enum values and letters."""
    assert len(Axis) == 5
    assert [axis.letter for axis in CANONICAL_AXES] == ["X", "Y", "Z", "C", "T"]
    assert Axis("c") is Axis.CHANNEL


def test_pixel_kind_enum():
    """Test PixelKind enum has the eight supported kinds."""
    assert len(PixelKind) == 8
    assert PixelKind.UINT8 != PixelKind.INT8


@pytest.mark.parametrize(
    "kind,bits,signed,floating",
    [
        (PixelKind.INT8, 8, True, False),
        (PixelKind.UINT8, 8, False, False),
        (PixelKind.INT16, 16, True, False),
        (PixelKind.UINT16, 16, False, False),
        (PixelKind.INT32, 32, True, False),
        (PixelKind.UINT32, 32, False, False),
        (PixelKind.FLOAT32, 32, True, True),
        (PixelKind.FLOAT64, 64, True, True),
    ],
)
def test_pixel_kind_properties(kind, bits, signed, floating):
    """Test derived bit depth, signedness and floating point flags."""
    assert kind.bits_per_pixel == bits
    assert kind.bytes_per_pixel == bits // 8
    assert kind.signed is signed
    assert kind.floating_point is floating


def test_pixel_kind_dtype_byte_order():
    """Test dtype honours the requested byte order."""
    assert PixelKind.UINT16.dtype(True) == np.dtype("<u2")
    assert PixelKind.UINT16.dtype(False) == np.dtype(">u2")
    assert PixelKind.FLOAT64.dtype(False) == np.dtype(">f8")


def test_pixel_kind_lookup():
    """Test lookup by bit depth."""
    assert PixelKind.from_integer(16, signed=True) is PixelKind.INT16
    assert PixelKind.from_integer(8, signed=False) is PixelKind.UINT8
    assert PixelKind.from_float(64) is PixelKind.FLOAT64

    with pytest.raises(KeyError):
        PixelKind.from_integer(12, signed=False)
    with pytest.raises(KeyError):
        PixelKind.from_float(16)


def test_enum_string_representation():
    """Test string representation of enum values."""
    assert str(Axis.TIME) == "Axis.TIME"
    assert str(ErrorKind.CORRUPT_DATA) == "ErrorKind.CORRUPT_DATA"


def test_error_kinds_unique():
    """Test error kinds are distinct."""
    assert len(set(ErrorKind)) == len(ErrorKind) == 10
