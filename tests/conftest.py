import numpy as np
import pytest
from synthetic_files import (
    build_obf,
    ics_header,
    obf_stack,
    ramp_planes,
    write_ics_pair,
    write_ics_single,
    zlib_bytes,
)

from microplane import IcsFormat, ObfFormat


@pytest.fixture
def ics_format():
    return IcsFormat()


@pytest.fixture
def obf_format():
    return ObfFormat()


@pytest.fixture
def ics_planes():
    """24 little-endian uint16 planes of 6 rows x 8 columns (Z=2, C=3, T=4)."""
    return ramp_planes(24, 6, 8, "<u2")


@pytest.fixture
def ics_pair(tmp_path, ics_planes):
    """Version 1.0 header + companion pixel file; returns the .ics path."""
    return write_ics_pair(tmp_path, ics_header(), ics_planes.tobytes())


@pytest.fixture
def ics_single(tmp_path, ics_planes):
    """Self-contained version 2.0 file; returns its path."""
    return write_ics_single(tmp_path, ics_header(version="2.0"), ics_planes.tobytes())


@pytest.fixture
def obf_planes():
    """Planes of the compressed and raw stacks of :func:`obf_file`."""
    compressed = ramp_planes(4, 5, 7, "<u2")
    raw = ramp_planes(2, 3, 4, "<f4")
    return compressed, raw


@pytest.fixture
def obf_file(tmp_path, obf_planes):
    """OBF file with a zlib stack (7x5, Z=4) and a raw float stack (4x3, T=2)."""
    compressed, raw = obf_planes
    data = build_obf(
        [
            obf_stack(
                [7, 5, 4],
                type_code=0x04,
                data=zlib_bytes(compressed.tobytes()),
                compression=1,
                name="confocal",
                lengths=[1.4, 1.0, 2.0],
            ),
            obf_stack(
                [4, 3, 1, 1, 2],
                type_code=0x40,
                data=raw.tobytes(),
                name="sted",
            ),
        ]
    )
    path = tmp_path / "sample.obf"
    path.write_bytes(data)
    return path


@pytest.fixture
def random_generator():
    return np.random.default_rng(1234)
