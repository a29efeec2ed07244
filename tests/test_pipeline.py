"""Tests for the high-level open_image / create_writer entry points."""

import gzip

import dask.array as da
import numpy as np
import pytest
from numpy.testing import assert_array_equal
from synthetic_files import ics_header, write_ics_pair

from microplane import (
    ConfigurationError,
    ImageMetadata,
    IOSettings,
    Metadata,
    ObfFormat,
    PixelKind,
    UnsupportedCompressionError,
    UnsupportedFormatError,
    create_writer,
    open_image,
)
from microplane.pipeline import plane_shape
from microplane.plugins.formats.ics import IcsWriter


class TestOpenImage:
    def test_reads_planes(self, obf_file, obf_planes):
        compressed, raw = obf_planes
        with open_image(obf_file) as image_file:
            assert image_file.image_count == 2
            assert image_file.format.name == "OBF"
            assert_array_equal(image_file.read_plane(0, 2), compressed[2])
            assert_array_equal(image_file.read_plane(1, 1), raw[1])

    def test_read_region_bytes(self, ics_pair, ics_planes):
        with open_image(ics_pair) as image_file:
            region = image_file.read_region(0, 3, 2, 1, 3, 2)
        assert bytes(region) == ics_planes[3, 1:3, 2:5].tobytes()

    def test_to_dask(self, obf_file, obf_planes):
        compressed, raw = obf_planes
        with open_image(obf_file) as image_file:
            stack = image_file.to_dask(0)
            assert isinstance(stack, da.Array)
            assert stack.shape == (4, 5, 7)
            assert stack.chunks[0] == (1, 1, 1, 1)
            assert stack.dtype == np.dtype("uint16")
            assert_array_equal(stack.compute(), compressed)
            assert_array_equal(stack[::-1].compute(), compressed[::-1])
            assert_array_equal(image_file.to_dask(1).compute(), raw)

    def test_to_dask_rgb(self, tmp_path):
        data = np.arange(2 * 3 * 4 * 3, dtype=np.uint8).reshape(2, 3, 4, 3)
        header = ics_header(order="bits ch x y z", sizes="8 3 4 3 2", byte_order="1")
        with open_image(write_ics_pair(tmp_path, header, data.tobytes())) as image_file:
            stack = image_file.to_dask()
            assert stack.shape == (2, 3, 4, 3)
            assert_array_equal(stack.compute(), data)

    def test_explicit_format_and_settings(self, tmp_path, ics_planes):
        path = write_ics_pair(
            tmp_path, ics_header(compression="gzip"), gzip.compress(bytes(ics_planes.nbytes))
        )
        with open_image(path, settings=IOSettings(eager_decompression=False)) as image_file:
            assert not image_file.format.settings.eager_decompression
            with pytest.raises(UnsupportedCompressionError):
                image_file.read_plane(0, 0)

    def test_format_override(self, obf_file):
        with open_image(obf_file, fmt=ObfFormat()) as image_file:
            assert repr(image_file) == f"ImageFile(path={str(obf_file)!r}, format='OBF')"

    def test_unknown_file(self, tmp_path):
        path = tmp_path / "unknown.bin"
        path.write_bytes(b"\x00" * 32)
        with pytest.raises(UnsupportedFormatError):
            open_image(path)

    def test_close_is_idempotent(self, ics_single):
        image_file = open_image(ics_single)
        image_file.close()
        image_file.close()
        assert image_file.reader is None


class TestCreateWriter:
    @pytest.mark.parametrize(
        "name,compression", [("out.obf", "zlib"), ("out.msr", None), ("out.ics", None)]
    )
    def test_write_then_read(self, tmp_path, name, compression):
        image = ImageMetadata.create(6, 4, PixelKind.FLOAT32, size_t=3)
        planes = np.random.default_rng(7).random((3, 4, 6)).astype(np.float32)
        path = tmp_path / name
        with create_writer(path, Metadata(images=[image]), compression=compression) as writer:
            for index, plane in enumerate(planes):
                writer.write_plane(0, index, plane)
            assert writer.compression == (compression or "Uncompressed")

        with open_image(path) as image_file:
            assert image_file.metadata[0].size_t == 3
            assert_array_equal(image_file.to_dask().compute(), planes)

    def test_sequential_flag(self, tmp_path):
        image = ImageMetadata.create(2, 2, PixelKind.UINT8)
        writer = create_writer(tmp_path / "seq.obf", Metadata(images=[image]), sequential=True)
        assert writer.sequential
        writer.close()

    def test_unknown_suffix(self, tmp_path):
        image = ImageMetadata.create(2, 2, PixelKind.UINT8)
        with pytest.raises(UnsupportedFormatError):
            create_writer(tmp_path / "out.tif", Metadata(images=[image]))

    def test_rejected_metadata_closes_file(self, tmp_path, monkeypatch):
        opened = []
        open_dest = IcsWriter.open_dest

        def recording_open_dest(self, path):
            stream = open_dest(self, path)
            opened.append(stream)
            return stream

        monkeypatch.setattr(IcsWriter, "open_dest", recording_open_dest)
        image = ImageMetadata.create(2, 2, PixelKind.UINT8)
        with pytest.raises(ConfigurationError, match="exactly one image"):
            create_writer(tmp_path / "pair.ics", Metadata(images=[image, image.copy()]))
        assert len(opened) == 1
        assert opened[0].closed


@pytest.mark.parametrize(
    "kwargs,expected",
    [
        ({}, (3, 4)),
        ({"size_c": 3, "rgb": True, "interleaved": True}, (3, 4, 3)),
        ({"size_c": 3, "rgb": True, "interleaved": False}, (3, 3, 4)),
        ({"size_c": 6, "rgb": True, "interleaved": True}, (3, 4)),
    ],
)
def test_plane_shape(kwargs, expected):
    image = ImageMetadata.create(4, 3, PixelKind.UINT8, **kwargs)
    assert plane_shape(image) == expected
