"""
Imspector OBF/MSR format plugin.

An OBF file is a little-endian binary header followed by a chain of stack
records. Each stack holds one image as a contiguous run of planes, either
raw or as a single zlib stream. Version 1 files append a footer after each
stack's data with axis labels, per-position step values and step labels.
"""

from __future__ import annotations

import zlib
from typing import List

from attrs import define, field

from ...enums import CANONICAL_AXES, Axis, PixelKind
from ...errors import (
    ConfigurationError,
    CorruptDataError,
    CorruptHeaderError,
    UnsupportedCompressionError,
    UnsupportedDimensionalityError,
    UnsupportedFormatError,
    UnsupportedVersionError,
)
from ...logging import get_logger
from ...metadata import ImageMetadata, Metadata
from ...stream import RandomAccessStream
from ... import tools
from .base import Checker, Format, Parser, Reader, Writer

logger = get_logger(__name__)

FILE_MAGIC = b"OMAS_BF\n"
STACK_MAGIC = b"OMAS_BF_STACK\n"
MAGIC_NUMBER = 0xFFFF
FILE_VERSION = 1
STACK_VERSION = 3
WRITTEN_STACK_VERSION = 1
MAX_DIMENSIONS = 15
MAX_USABLE_DIMENSIONS = 5

#: Offset of the data length field within a stack record.
DATA_LENGTH_OFFSET = 352
#: Offset of the next-stack pointer within a stack record.
NEXT_OFFSET = 360
#: Offset of the first-stack pointer within the file header.
FIRST_STACK_OFFSET = 14
#: Size of the footer flags preceding the axis labels.
FOOTER_FLAGS_SIZE = 4 + 4 * MAX_DIMENSIONS * 2

PIXEL_TYPES = {
    0x01: PixelKind.UINT8,
    0x02: PixelKind.INT8,
    0x04: PixelKind.UINT16,
    0x08: PixelKind.INT16,
    0x10: PixelKind.UINT32,
    0x20: PixelKind.INT32,
    0x40: PixelKind.FLOAT32,
    0x80: PixelKind.FLOAT64,
}
PIXEL_TYPE_CODES = {kind: code for code, kind in PIXEL_TYPES.items()}

DEFAULT_LABELS = ("X", "Y", "Z", "C", "T")


def file_version(stream: RandomAccessStream) -> int:
    """Return the version of an OBF file header, or -1 if it is not one."""
    stream.seek(0)
    stream.order(True)
    try:
        magic = stream.read(len(FILE_MAGIC))
        number = stream.read_unsigned_short()
        version = stream.read_int()
    except EOFError:
        return -1
    if magic == FILE_MAGIC and number == MAGIC_NUMBER:
        return version
    return -1


@define
class Stack:
    """Location of one stack's pixel data."""

    position: int = 0
    length: int = 0
    compression: bool = False


@define
class ObfMetadata(Metadata):
    """Parsed OBF file: one image and one :class:`Stack` per stack record."""

    stacks: List[Stack] = field(factory=list)
    file_version: int = FILE_VERSION


class ObfChecker(Checker):
    suffix_sufficient = False
    suffix_necessary = False

    def check_content(self, stream: RandomAccessStream) -> bool:
        return 0 <= file_version(stream) <= FILE_VERSION


class ObfParser(Parser):
    metadata_class = ObfMetadata

    def typed_parse(self, stream, metadata: ObfMetadata, companions) -> None:
        version = file_version(stream)
        if version < 0:
            raise UnsupportedFormatError(f"{stream.name} is not an OBF file")
        if version > FILE_VERSION:
            raise UnsupportedVersionError(f"Unsupported OBF file version {version}")
        metadata.file_version = version
        metadata.used_files = [stream.name] if stream.name else []

        try:
            position = stream.read_long()
            description = stream.read_string(stream.read_int())
            metadata.table["Description"] = description

            visited = set()
            while position != 0:
                if position in visited:
                    raise CorruptHeaderError(f"Stack chain loops back to {position}")
                visited.add(position)
                position = self._read_stack(stream, position, metadata)
        except EOFError as err:
            raise CorruptHeaderError(f"Truncated OBF header: {err}") from err
        logger.debug(f"Found {len(metadata.stacks)} stacks")

    def _read_stack(self, stream, position: int, metadata: ObfMetadata) -> int:
        stream.seek(position)
        magic = stream.read(len(STACK_MAGIC))
        number = stream.read_unsigned_short()
        version = stream.read_int()
        if magic != STACK_MAGIC or number != MAGIC_NUMBER or version > STACK_VERSION:
            raise CorruptHeaderError(f"Unsupported stack format at offset {position}")

        image = ImageMetadata(little_endian=True, thumbnail=False, order_certain=False)
        dimensions = stream.read_int()
        if dimensions > MAX_USABLE_DIMENSIONS:
            raise UnsupportedDimensionalityError(
                f"Unsupported number of {dimensions} dimensions"
            )
        if dimensions < 0:
            raise CorruptHeaderError(f"Negative number of dimensions {dimensions}")

        sizes = []
        for dimension in range(MAX_DIMENSIONS):
            size = stream.read_int()
            sizes.append(size if dimension < dimensions else 1)
        for axis, size in zip(CANONICAL_AXES, sizes):
            image.set_axis_length(axis, size)

        lengths = [stream.read_double() for _ in range(MAX_DIMENSIONS)][:dimensions]
        offsets = [stream.read_double() for _ in range(MAX_DIMENSIONS)][:dimensions]
        image.table["Lengths"] = lengths
        image.table["Offsets"] = offsets

        type_code = stream.read_int()
        if type_code not in PIXEL_TYPES:
            raise UnsupportedDimensionalityError(f"Unsupported data type {type_code}")
        image.pixel_kind = PIXEL_TYPES[type_code]

        compression = stream.read_int()
        if compression not in (0, 1):
            raise UnsupportedCompressionError(f"Unsupported compression {compression}")
        stream.skip(4)
        name_length = stream.read_int()
        description_length = stream.read_int()
        stream.skip(8)
        data_length = stream.read_long()
        if data_length < 0:
            raise CorruptHeaderError("Negative stack length on disk")
        next_position = stream.read_long()

        name = stream.read_string(name_length)
        description = stream.read_string(description_length)
        image.table["Name"] = name
        image.table["Description"] = description
        image.acquisition.name = name
        image.acquisition.description = description or None
        for axis, length, size in zip((Axis.X, Axis.Y, Axis.Z), lengths, sizes):
            if size > 0:
                image.acquisition.physical_sizes[axis] = length / size

        stack = Stack(position=stream.tell(), length=data_length, compression=compression == 1)
        logger.debug(
            f"Stack {name!r} at {stack.position}: {sizes[:dimensions]}"
            f" {image.pixel_kind.value}, compressed={stack.compression}"
        )
        if metadata.file_version >= 1:
            self._read_footer(stream, image, stack, dimensions, sizes)

        image.validate()
        metadata.add_image(image)
        metadata.stacks.append(stack)
        return next_position

    @staticmethod
    def _read_footer(stream, image: ImageMetadata, stack: Stack, dimensions: int, sizes) -> None:
        stream.seek(stack.position + stack.length)
        footer = stream.tell()
        offset = stream.read_int()
        steps_present = [stream.read_int() != 0 for _ in range(MAX_DIMENSIONS)]
        labels_present = [stream.read_int() != 0 for _ in range(MAX_DIMENSIONS)]

        stream.seek(footer + offset)
        labels = [stream.read_string(stream.read_int()) for _ in range(dimensions)]
        image.table["Labels"] = labels

        steps = []
        for dimension in range(dimensions):
            count = sizes[dimension] if steps_present[dimension] else 0
            steps.append([stream.read_double() for _ in range(count)])
        image.table["Steps"] = steps

        step_labels = []
        for dimension in range(dimensions):
            count = sizes[dimension] if labels_present[dimension] else 0
            step_labels.append([stream.read_string(stream.read_int()) for _ in range(count)])
        image.table["StepLabels"] = step_labels


@define
class Frame:
    """Most recently inflated plane of a compressed stack."""

    image_index: int = -1
    number: int = -1
    data: bytearray = field(factory=bytearray, repr=False)


class ObfReader(Reader):
    """
    Reads raw stacks by position and zlib stacks by streaming inflate.

    Compressed planes can only be produced in order, so one decoded frame
    is cached; asking for an earlier plane restarts the stream at the
    stack start.
    """

    def __init__(self, fmt):
        super().__init__(fmt)
        self.reset()

    def reset(self) -> None:
        self._frame = Frame()
        self._inflater = zlib.decompressobj()
        self._pending = b""
        self._input_position = 0

    def open_region(self, image_index, plane_index, buf, x, y, w, h) -> None:
        image = self.metadata.get(image_index)
        stack = self.metadata.stacks[image_index]
        if stack.compression:
            frame = self._inflate_to(image_index, plane_index, image, stack)
            tools.copy_region(frame, 0, image, x, y, w, h, buf)
        else:
            tools.read_plane(
                self.stream, image, stack.position + plane_index * image.plane_size,
                x, y, w, h, buf,
            )

    def _inflate_to(self, image_index: int, plane_index: int, image, stack: Stack) -> bytearray:
        frame = self._frame
        if frame.image_index != image_index:
            frame.data = bytearray(image.plane_size)
            frame.image_index = image_index
            frame.number = -1
        if plane_index == frame.number:
            return frame.data
        if plane_index < frame.number:
            frame.number = -1
        if frame.number == -1:
            logger.debug(f"Restarting inflate of stack {image_index}")
            self._inflater = zlib.decompressobj()
            self._pending = b""
            self._input_position = stack.position
        try:
            while frame.number != plane_index:
                self._inflate_frame(stack, frame.data)
                frame.number += 1
        except Exception:
            # frame.data is partly overwritten; the next read must restart
            frame.number = -1
            raise
        return frame.data

    def _next_chunk(self, stack: Stack) -> bytes:
        remainder = stack.position + stack.length - self._input_position
        if remainder <= 0:
            return b""
        first = self._input_position == stack.position
        self.stream.seek(self._input_position)
        chunk = self.stream.read(min(self.settings.buffer_size, remainder))
        self._input_position += len(chunk)
        if first and len(chunk) >= 2 and chunk[1] & 0x20:
            raise UnsupportedCompressionError("Unsupported zlib compression (preset dictionary)")
        return chunk

    def _inflate_frame(self, stack: Stack, out: bytearray) -> None:
        size = len(out)
        offset = 0
        while offset != size:
            if not self._pending:
                self._pending = self._next_chunk(stack)
            try:
                data = self._inflater.decompress(self._pending, size - offset)
            except zlib.error as err:
                raise CorruptDataError(str(err)) from err
            self._pending = self._inflater.unconsumed_tail
            if not data and not self._pending and (
                self._inflater.eof
                or self._input_position >= stack.position + stack.length
            ):
                raise CorruptDataError("Corrupted zlib compression")
            out[offset:offset + len(data)] = data
            offset += len(data)


class ObfWriter(Writer):
    """
    Writes version 1 OBF files, one stack per image.

    Uncompressed stacks are laid out when the destination is bound and
    accept regions in any order. zlib stacks accept whole planes strictly in
    order; each stack's length and chain pointer are patched once it is
    complete.
    """

    compression_types = ("Uncompressed", "zlib")

    def __init__(self, fmt):
        super().__init__(fmt)
        self._data_positions: List[int] = []
        self._record_start = 0
        self._compressor = None
        self._next = (0, 0)

    def set_compression(self, compression: str) -> None:
        if self.stream is not None:
            raise ConfigurationError("Compression must be set before the destination")
        super().set_compression(compression)

    def setup_dest(self) -> None:
        self.stream.order(True)
        self.stream.seek(0)
        if any(image.is_rgb and image.size_c > 1 for image in self.metadata.images):
            raise ConfigurationError("OBF stacks cannot hold RGB samples")
        self._data_positions = []
        self._record_start = 0
        self._compressor = None
        self._next = (0, 0)

        description = str(self.metadata.table.get("Description", "")).encode("utf-8")
        self.stream.write(FILE_MAGIC)
        self.stream.write_unsigned_short(MAGIC_NUMBER)
        self.stream.write_int(FILE_VERSION)
        first = 0
        if self.metadata.image_count:
            first = FIRST_STACK_OFFSET + 8 + 4 + len(description)
        self.stream.write_long(first)
        self.stream.write_int(len(description))
        self.stream.write(description)

        if self.compression == "Uncompressed":
            previous = None
            for index, image in enumerate(self.metadata.images):
                start = self.stream.tell()
                if previous is not None:
                    self._patch_long(previous + NEXT_OFFSET, start)
                data_length = image.plane_count * image.plane_size
                data_position = self._write_record(index, data_length, compressed=False)
                self._data_positions.append(data_position)
                self.stream.seek(data_position + data_length)
                self._write_footer(image)
                previous = start

    # -- record encoding --

    def _write_record(self, index: int, data_length: int, compressed: bool) -> int:
        image = self.metadata.get(index)
        name = str(image.table.get("Name", image.acquisition.name or "")).encode("utf-8")
        description = str(image.table.get("Description", "")).encode("utf-8")
        sizes = [image.axis_length(axis) for axis in CANONICAL_AXES]
        physical = image.acquisition.physical_sizes
        lengths = [physical.get(axis, 1.0) * size for axis, size in zip(CANONICAL_AXES, sizes)]
        offsets = list(image.table.get("Offsets", []))[:MAX_USABLE_DIMENSIONS]
        offsets += [0.0] * (MAX_USABLE_DIMENSIONS - len(offsets))

        out = self.stream
        out.write(STACK_MAGIC)
        out.write_unsigned_short(MAGIC_NUMBER)
        out.write_int(WRITTEN_STACK_VERSION)
        out.write_int(MAX_USABLE_DIMENSIONS)
        for dimension in range(MAX_DIMENSIONS):
            out.write_int(sizes[dimension] if dimension < MAX_USABLE_DIMENSIONS else 1)
        for values in (lengths, offsets):
            for dimension in range(MAX_DIMENSIONS):
                out.write_double(values[dimension] if dimension < MAX_USABLE_DIMENSIONS else 0.0)
        out.write_int(PIXEL_TYPE_CODES[image.pixel_kind])
        out.write_int(1 if compressed else 0)
        out.write_int(0)
        out.write_int(len(name))
        out.write_int(len(description))
        out.write_long(0)
        out.write_long(data_length)
        out.write_long(0)
        out.write(name)
        out.write(description)
        return out.tell()

    def _write_footer(self, image: ImageMetadata) -> None:
        labels = image.table.get("Labels")
        if not labels or len(labels) != MAX_USABLE_DIMENSIONS:
            labels = DEFAULT_LABELS
        out = self.stream
        out.write_int(FOOTER_FLAGS_SIZE)
        for _ in range(MAX_DIMENSIONS * 2):
            out.write_int(0)
        for label in labels:
            encoded = str(label).encode("utf-8")
            out.write_int(len(encoded))
            out.write(encoded)

    def _patch_long(self, position: int, value: int) -> None:
        end = self.stream.tell()
        self.stream.seek(position)
        self.stream.write_long(value)
        self.stream.seek(end)

    # -- zlib stacks --

    def _begin_stack(self, index: int) -> None:
        start = self.stream.tell()
        if index > 0:
            self._patch_long(self._record_start + NEXT_OFFSET, start)
        self._record_start = start
        self._data_positions.append(self._write_record(index, 0, compressed=True))
        self._compressor = zlib.compressobj()
        logger.debug(f"Started zlib stack {index} at {start}")

    def _end_stack(self, index: int) -> None:
        self.stream.write(self._compressor.flush())
        self._compressor = None
        data_length = self.stream.tell() - self._data_positions[index]
        self._write_footer(self.metadata.get(index))
        self._patch_long(self._record_start + DATA_LENGTH_OFFSET, data_length)

    def save_region(self, image_index, plane_index, buf, x, y, w, h) -> None:
        image = self.metadata.get(image_index)
        if self.compression == "Uncompressed":
            pixel = image.bytes_per_pixel
            row_length = w * pixel
            plane_offset = self._data_positions[image_index] + plane_index * image.plane_size
            for row in range(h):
                self.stream.seek(plane_offset + ((y + row) * image.size_x + x) * pixel)
                self.stream.write(buf[row * row_length:(row + 1) * row_length])
            return

        if (x, y, w, h) != (0, 0, image.size_x, image.size_y):
            raise ConfigurationError("zlib stacks accept whole planes only")
        if (image_index, plane_index) != self._next:
            raise ConfigurationError(
                f"zlib stacks are written in order; expected image {self._next[0]}"
                f" plane {self._next[1]}, got image {image_index} plane {plane_index}"
            )
        if plane_index == 0:
            self._begin_stack(image_index)
        self.stream.write(self._compressor.compress(bytes(buf[: image.plane_size])))
        if plane_index + 1 == image.plane_count:
            self._end_stack(image_index)
            self._next = (image_index + 1, 0)
        else:
            self._next = (image_index, plane_index + 1)

    def finish(self) -> None:
        if self.compression == "zlib":
            image_index, plane_index = self._next
            if image_index < self.metadata.image_count:
                logger.warning(
                    f"Closing OBF file with image {image_index} incomplete at plane {plane_index}"
                )
            if plane_index > 0:
                self._end_stack(image_index)
                image_index += 1
            for index in range(image_index, self.metadata.image_count):
                self._begin_stack(index)
                self._end_stack(index)
        self.stream.flush()


class ObfFormat(Format):
    """Imspector OBF and MSR files."""

    name = "OBF"
    suffixes = ("obf", "msr")
    checker_class = ObfChecker
    parser_class = ObfParser
    reader_class = ObfReader
    writer_class = ObfWriter
