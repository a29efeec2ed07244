"""
Image Cytometry Standard (ICS) format plugin.

An ICS dataset is a line-oriented text header (``.ics``) plus raw pixel
data, either in a companion ``.ids`` file (version 1.0) or appended to the
header after its ``end`` line (version 2.0).

Header lines are tab (or space) separated token lists. Tokens found in one
of three fixed vocabularies build a hierarchical key; the first token that
is not in any vocabulary starts the value. See :func:`classify`.
"""

from __future__ import annotations

import gzip
import os
import zlib
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np
from attrs import define, field

from ...enums import Axis, PixelKind
from ...errors import (
    ConfigurationError,
    CorruptDataError,
    CorruptHeaderError,
    MissingCompanionFileError,
    UnsupportedCompressionError,
    UnsupportedDimensionalityError,
)
from ...logging import get_logger
from ...metadata import MAX_RGB_CHANNELS, ImageMetadata, Metadata
from ...stream import RandomAccessStream
from ... import tools
from .base import Checker, Format, Parser, Reader, Writer

logger = get_logger(__name__)

VERSION_TWO_MARKER = "ics_version\t2.0"

#: Top-level header categories.
CATEGORIES = (
    "ics_version", "filename", "source", "layout", "representation",
    "parameter", "sensor", "history", "document", "view", "end",
)

#: Header sub-categories; a trailing ``*`` matches any suffix.
SUB_CATEGORIES = (
    "file", "offset", "parameters", "order", "sizes", "coordinates",
    "significant_bits", "format", "sign", "compression", "byte_order",
    "origin", "scale", "units", "labels", "SCIL_TYPE", "type", "model",
    "s_params", "laser", "gain*", "dwell", "shutter*", "pinhole", "laser*",
    "version", "objective", "PassCount", "step*", "view",
    "view*", "date", "GMTdate", "label", "software", "author", "length",
    "Z (background)", "dimensions", "rep period", "image form",
    "extents", "offsets", "region", "expon. order", "a*", "tau*",
    "noiseval", "excitationfwhm", "created on",
    "text", "other text", "mode", "CFD limit low", "CFD limit high",
    "CFD zc level", "CFD holdoff", "SYNC zc level", "SYNC freq div",
    "SYNC holdoff", "TAC range", "TAC gain", "TAC offset", "TAC limit low",
    "ADC resolution", "Ext latch delay", "collection time", "repeat time",
    "stop on time", "stop on O'flow", "dither range", "count increment",
    "memory bank", "sync threshold", "dead time comp", "polarity",
    "line compressio", "scan flyback", "scan borders", "pixel time",
    "pixel clock", "trigger", "scan pixels x", "scan pixels y",
    "routing chan x", "routing chan y", "detector type", "channel*",
    "filter*", "wavelength*", "black level*", "gain*", "ht*",
    "scan resolution", "scan speed", "scan zoom", "scan pattern",
    "scan pos x", "scan pos y", "transmission", "x amplitude", "y amplitude",
    "x offset", "y offset", "x delay", "y delay", "beam zoom", "mirror *",
    "direct turret", "desc exc turret", "desc emm turret", "cube",
    "stage_xyzum", "cube descriptio", "camera", "exposure", "bits/pixel",
    "black level", "binning", "left", "top", "cols", "rows", "gain",
    "significant_channels", "allowedlinemodes",
)

#: Header sub-sub-categories.
SUB_SUB_CATEGORIES = (
    "Channels", "PinholeRadius", "LambdaEx", "LambdaEm", "ExPhotonCnt",
    "RefInxMedium", "NumAperture", "RefInxLensMedium", "PinholeSpacing",
    "power", "wavelength", "name", "Type", "Magnification", "NA",
    "WorkingDistance", "Immersion", "Pinhole", "Channel *", "Gain *",
    "Shutter *", "Position", "Size", "Port", "Cursor", "Color", "BlackLevel",
    "Saturation", "Gamma", "IntZoom", "Live", "Synchronize", "ShowIndex",
    "AutoResize", "UseUnits", "Zoom", "IgnoreAspect", "ShowCursor", "ShowAll",
    "Axis", "Order", "Tile", "scale", "DimViewOption",
)

VOCABULARIES = (CATEGORIES, SUB_CATEGORIES, SUB_SUB_CATEGORIES)

_AXIS_TOKENS = {"x": Axis.X, "y": Axis.Y, "z": Axis.Z, "ch": Axis.CHANNEL}


# -- header grammar --


def matches(pattern: str, text: str) -> bool:
    """Case-insensitive equality, or a case-sensitive prefix match for ``*`` patterns."""
    if text.lower() == pattern.lower():
        return True
    return pattern.endswith("*") and text.startswith(pattern[:-1])


def is_key_token(token: str) -> bool:
    return any(matches(pattern, token) for vocab in VOCABULARIES for pattern in vocab)


def tokenize(line: str) -> List[str]:
    """Split a header line on tabs, or on spaces when it has no tab."""
    separator = "\t" if "\t" in line else " "
    return [token.strip() for token in line.split(separator) if token.strip()]


def classify(tokens: Sequence[str]) -> Tuple[str, Optional[str]]:
    """
    Split header tokens into a key and a value.

    Tokens are consumed left to right; vocabulary tokens extend the key and
    the first other token starts the value, which takes every remaining
    token joined by single spaces.

    Returns:
        ``(key, value)``; value is None when every token is a key token

    Examples:
        >>> classify(["layout", "sizes", "16 64 64"])
        ('layout sizes', '16 64 64')
        >>> classify(["history", "laser1", "wavelength", "488", "nm"])
        ('history laser1 wavelength', '488 nm')
    """
    for position, token in enumerate(tokens):
        if not is_key_token(token):
            return " ".join(tokens[:position]), " ".join(tokens[position:])
    return " ".join(tokens), None


def companion_paths(path: str) -> Tuple[str, Optional[str]]:
    """
    Return ``(header_path, pixels_path)`` for an ``.ics`` or ``.ids`` path.

    The sibling name differs in the second-to-last character (``c``/``d``,
    case preserved). Paths with another suffix have no companion.
    """
    suffix = os.path.splitext(path)[1].lower()
    if suffix == ".ics":
        return path, path[:-2] + chr(ord(path[-2]) + 1) + path[-1]
    if suffix == ".ids":
        return path[:-2] + chr(ord(path[-2]) - 1) + path[-1], path
    return path, None


def _to_int(value: str, what: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise CorruptHeaderError(f"Invalid {what} value {value!r}") from None


def _trailing_index(key: str, prefix: str) -> int:
    digits = key[len(prefix):].split(" ")[0]
    return int(digits) if digits else 0


@define
class IcsMetadata(Metadata):
    """
    Parsed ICS dataset.

    Attributes:
        version_two: Pixels follow the header in the same file
        invert_y: Rows are stored bottom-up
        pixel_offset: Byte offset of the first plane in the pixel file
        bits_per_pixel: Bit depth declared by the layout, before rounding
        compression: ``representation compression`` value from the header
        gzip: Pixel payload is gzip compressed
        inflated: Whole decompressed payload, when decompressed at parse time
        pixels_located: Pixel offset and compression have been resolved
            against the pixel file (deferred when ``group_files`` is off)
        channels_interleaved: Channel samples are stored innermost
        header_path: Path of the ``.ics`` header
        pixels_path: Path of the file holding the pixel data
    """

    version_two: bool = False
    invert_y: bool = False
    pixel_offset: int = 0
    bits_per_pixel: int = 0
    compression: Optional[str] = None
    gzip: bool = False
    inflated: Optional[bytes] = field(default=None, repr=False)
    pixels_located: bool = False
    channels_interleaved: bool = False
    header_path: Optional[str] = None
    pixels_path: Optional[str] = None


@define
class IcsHeader:
    """Structural header fields collected while scanning the lines."""

    layout_sizes: Optional[str] = None
    layout_order: Optional[str] = None
    significant_bits: Optional[str] = None
    byte_order: Optional[str] = None
    representation_format: Optional[str] = None
    compression: Optional[str] = None
    scale: Optional[str] = None
    signed: bool = False
    emission: Optional[str] = None
    excitation: Optional[str] = None
    extents: Optional[List[str]] = None
    labels: Optional[List[str]] = None
    history: List[str] = field(factory=list)


class IcsChecker(Checker):
    """Recognizes ``.ics``/``.ids`` names, or a header starting with ``ics_version``."""

    suffix_sufficient = True
    suffix_necessary = False

    def check_content(self, stream: RandomAccessStream) -> bool:
        head = stream.read(min(64, stream.length())).decode("latin-1")
        lines = head.split("\n")
        return len(lines) > 1 and lines[1].startswith("ics_version")


class IcsParser(Parser):
    metadata_class = IcsMetadata

    def typed_parse(
        self,
        stream: RandomAccessStream,
        metadata: IcsMetadata,
        companions: List[RandomAccessStream],
    ) -> None:
        opened: List[RandomAccessStream] = []
        try:
            header, pixels = self._resolve_streams(stream, metadata, companions, opened)
            image = metadata.add_image()
            fields = self._read_header(header, metadata, image)
            self._populate(fields, metadata, image)
            metadata.compression = fields.compression
            if pixels is not None:
                self.locate_pixels(pixels, metadata)
            image.validate()
        finally:
            for extra in opened:
                extra.close()

    # -- companion files --

    def _resolve_streams(self, stream, metadata, companions, opened):
        name = stream.name
        if name is not None:
            header_path, pixels_path = companion_paths(name)
        else:
            header_path, pixels_path = None, None
        logger.debug(f"Finding companion file for {name}")

        if name is not None and header_path != name:
            # Given the pixel file; the header is the companion.
            if companions:
                header = companions[0]
            else:
                if not os.path.exists(header_path):
                    raise MissingCompanionFileError(f"ICS file {header_path} not found")
                header = RandomAccessStream.from_path(header_path)
                opened.append(header)
            pixels = stream
        else:
            header = stream
            pixels = companions[0] if companions else None

        header.seek(0)
        marker = header.read(min(17, header.length())).decode("latin-1")
        metadata.version_two = marker.strip() == VERSION_TWO_MARKER
        metadata.header_path = header_path
        if metadata.version_two:
            metadata.pixels_path = header_path
            metadata.used_files = [header_path] if header_path else []
            return header, header

        metadata.pixels_path = pixels_path
        metadata.used_files = [p for p in (pixels_path, header_path) if p]
        if pixels is None and self.settings.group_files:
            if pixels_path is None or not os.path.exists(pixels_path):
                raise MissingCompanionFileError(f"IDS file {pixels_path} not found")
            pixels = RandomAccessStream.from_path(pixels_path)
            opened.append(pixels)
        return header, pixels

    # -- header lines --

    def _read_header(
        self, header: RandomAccessStream, metadata: IcsMetadata, image: ImageMetadata
    ) -> IcsHeader:
        logger.debug("Reading metadata")
        header.seek(0)
        fields = IcsHeader()
        line = header.read_line()
        if line is not None and not line.strip():
            # separator line
            line = header.read_line()
        while line is not None and line.strip() and line.strip() != "end":
            key, value = classify(tokenize(line))
            if value is not None:
                self._handle_entry(key, value, fields, metadata, image)
            line = header.read_line()

        metadata.table["history text"] = "".join(f"{text}\n" for text in fields.history)
        return fields

    def _handle_entry(
        self,
        key: str,
        value: str,
        fields: IcsHeader,
        metadata: IcsMetadata,
        image: ImageMetadata,
    ) -> None:
        name = key.lower()
        if name in ("history", "history text"):
            fields.history.append(value)
            return
        metadata.table[key] = value
        acquisition = image.acquisition

        if name == "layout sizes":
            fields.layout_sizes = value
        elif name == "layout order":
            fields.layout_order = value
        elif name == "layout significant_bits":
            fields.significant_bits = value
        elif name == "representation byte_order":
            fields.byte_order = value
        elif name == "representation format":
            fields.representation_format = value
        elif name == "representation compression":
            fields.compression = value
        elif name == "parameter scale":
            fields.scale = value
        elif name == "representation sign":
            fields.signed = value == "signed"
        elif name == "sensor s_params lambdaem":
            fields.emission = value
        elif name == "sensor s_params lambdaex":
            fields.excitation = value
        elif name == "history software" and "SVI" in value:
            # Huygens writes rows bottom-up
            metadata.invert_y = True
        elif name == "filename":
            acquisition.name = value
        elif name == "history extents":
            fields.extents = value.split()
        elif name == "history labels":
            fields.labels = value.split()
        elif name == "history date":
            self._parse_date(value, metadata, image)
        elif name == "history created on":
            try:
                created = datetime.strptime(value, "%H:%M:%S %d-%m-%Y")
            except ValueError:
                logger.warning(f"Unparseable creation date {value!r}")
            else:
                acquisition.creation_date = created.isoformat()
        elif name == "history author":
            acquisition.experimenter = value
        elif name == "history other text":
            acquisition.description = value
        elif name == "history objective":
            acquisition.objective_model = value
        elif name == "history objective immersion":
            acquisition.objective_immersion = value
        else:
            try:
                self._handle_numeric_entry(key, name, value, image)
            except ValueError:
                logger.warning(f"Ignoring malformed value {value!r} for {key!r}")

    def _handle_numeric_entry(
        self, key: str, name: str, value: str, image: ImageMetadata
    ) -> None:
        acquisition = image.acquisition
        if name == "history objective na":
            acquisition.objective_na = float(value)
        elif name == "history objective workingdistance":
            acquisition.objective_working_distance = float(value)
        elif name == "history objective magnification":
            acquisition.objective_magnification = int(float(value))
        elif name == "sensor s_params pinholeradius":
            acquisition.pinhole_sizes = [float(v) for v in value.split()]
        elif name == "history stage_xyzum":
            for axis, position in zip((Axis.X, Axis.Y, Axis.Z), value.split()):
                acquisition.stage_position[axis] = float(position)
        elif key.startswith("history gain"):
            index = _trailing_index(key, "history gain")
            acquisition.detector_gains[index] = float(value)
        elif key.startswith("history laser") and key.endswith("wavelength"):
            index = _trailing_index(key, "history laser")
            acquisition.laser_wavelengths[index] = int(float(value.replace("nm", "").strip()))
        elif key.startswith("history step") and key.endswith("name"):
            index = _trailing_index(key, "history step")
            acquisition.channel_names[index] = value

    def _parse_date(self, value: str, metadata: IcsMetadata, image: ImageMetadata) -> None:
        if " " not in value:
            return
        # the last token is a zone or year suffix the patterns do not cover
        text = value[: value.rindex(" ")]
        for pattern in self.settings.date_formats:
            try:
                parsed = datetime.strptime(text, pattern)
            except ValueError:
                continue
            image.acquisition.creation_date = parsed.isoformat()
            return
        logger.warning(f"Unparseable acquisition date {value!r}; using the default")
        image.acquisition.creation_date = self._default_date(metadata)

    @staticmethod
    def _default_date(metadata: IcsMetadata) -> str:
        path = metadata.header_path
        if path and os.path.exists(path):
            return datetime.fromtimestamp(os.path.getmtime(path)).isoformat()
        return datetime.now().isoformat()

    # -- structure --

    def _populate(self, fields: IcsHeader, metadata: IcsMetadata, image: ImageMetadata) -> None:
        logger.debug("Populating metadata")
        if fields.layout_order is None or fields.layout_sizes is None:
            raise CorruptHeaderError("Header has no layout order or layout sizes")
        order = fields.layout_order.split()
        sizes = fields.layout_sizes.split()

        rgb = "ch" in order and "x" in order and order.index("ch") < order.index("x")
        metadata.channels_interleaved = rgb
        dimension_order = "XY"
        bits = None
        for size, token in zip(sizes, order):
            value = _to_int(size, f"layout size for {token}")
            if token == "bits":
                bits = value
            elif token in ("x", "y"):
                image.set_axis_length(_AXIS_TOKENS[token], value)
            elif token == "z":
                image.set_axis_length(Axis.Z, value)
                dimension_order += "Z"
            elif token == "ch":
                image.set_axis_length(Axis.CHANNEL, value)
                if value > MAX_RGB_CHANNELS:
                    rgb = False
                dimension_order += "C"
            else:
                image.set_axis_length(Axis.TIME, value)
                dimension_order += "T"
        for letter in "ZTC":
            if letter not in dimension_order:
                dimension_order += letter
        for axis in (Axis.Z, Axis.CHANNEL, Axis.TIME):
            if image.axis_lengths.get(axis) == 0:
                image.set_axis_length(axis, 1)
        if bits is None and fields.significant_bits is not None:
            bits = _to_int(fields.significant_bits, "significant bits")
        if bits is None:
            raise CorruptHeaderError("Header does not declare a bit depth")

        image.dimension_order = dimension_order
        image.rgb = rgb and image.size_c > 1
        image.interleaved = image.rgb
        image.indexed = False
        image.false_color = False
        image.metadata_complete = True

        representation = fields.representation_format or "integer"
        image.little_endian = self._little_endian(fields.byte_order, representation, bits)
        image.pixel_kind = self._pixel_kind(representation, bits, fields.signed)
        metadata.bits_per_pixel = bits

        self._physical_sizes(fields, order, image)
        channels = image.size_c
        image.acquisition.emission_wavelengths = self._wavelengths(fields.emission, channels)
        image.acquisition.excitation_wavelengths = self._wavelengths(fields.excitation, channels)

    @staticmethod
    def _little_endian(byte_order: Optional[str], representation: str, bits: int) -> bool:
        little = True
        if byte_order:
            first = _to_int(byte_order.split()[0], "byte order")
            little = first == 1 if representation == "real" else first != 1
        # integer files below 32 bits carry the opposite convention
        if bits < 32:
            little = not little
        return little

    @staticmethod
    def _pixel_kind(representation: str, bits: int, signed: bool) -> PixelKind:
        try:
            if representation == "real":
                return PixelKind.from_float(bits)
            if representation == "integer":
                while bits % 8 != 0:
                    bits += 1
                if bits in (24, 48):
                    bits //= 3
                return PixelKind.from_integer(bits, signed)
        except KeyError:
            pass
        raise UnsupportedDimensionalityError(
            f"Unsupported pixel format: {representation} with {bits} bits"
        )

    @staticmethod
    def _physical_sizes(fields: IcsHeader, order: List[str], image: ImageMetadata) -> None:
        sizes = image.acquisition.physical_sizes
        # "history lengths" is not a key in the vocabulary; extents carry the sizes
        if fields.labels and fields.extents:
            for i, label in enumerate(fields.labels):
                label = label.lower().strip()
                try:
                    size = float(fields.extents[i])
                except (ValueError, IndexError):
                    logger.warning(f"No usable extent for axis label {label!r}")
                    continue
                if label in ("x", "y", "z"):
                    axis = _AXIS_TOKENS[label]
                    sizes[axis] = size / image.axis_length(axis)
                elif label == "t":
                    sizes[Axis.TIME] = size / image.size_t
                elif label == "c":
                    sizes[Axis.CHANNEL] = int(size / image.size_c)

        if fields.scale:
            for token, value in zip(order, fields.scale.split()):
                token = token.lower()
                try:
                    if token in ("x", "y", "z"):
                        sizes[_AXIS_TOKENS[token]] = float(value)
                    elif token == "t":
                        sizes[Axis.TIME] = float(value)
                    elif token == "ch":
                        sizes[Axis.CHANNEL] = int(float(value))
                except ValueError:
                    logger.warning(f"Ignoring malformed scale {value!r} for {token!r}")

    @staticmethod
    def _wavelengths(value: Optional[str], channels: int) -> List[Optional[int]]:
        tokens = value.split() if value else []
        wavelengths: List[Optional[int]] = []
        for channel in range(channels):
            if channel < len(tokens):
                try:
                    wavelengths.append(int(float(tokens[channel])))
                    continue
                except ValueError:
                    logger.warning(f"Ignoring malformed wavelength {tokens[channel]!r}")
            wavelengths.append(None)
        return wavelengths

    # -- pixel payload --

    def locate_pixels(self, pixels: RandomAccessStream, metadata: IcsMetadata) -> None:
        """Find the first plane in ``pixels`` and decompress a gzip payload.

        Called during parsing when the pixel file is at hand, or by the
        reader when parsing ran with ``group_files`` turned off.
        """
        image = metadata.get(0)
        if metadata.version_two:
            pixels.seek(0)
            line = pixels.read_line()
            while line is not None and line.strip() != "end":
                line = pixels.read_line()
            if line is None:
                raise CorruptHeaderError("Header has no end line")
            metadata.pixel_offset = pixels.tell()
        else:
            metadata.pixel_offset = 0
        metadata.pixels_located = True

        compression = (metadata.compression or "").lower()
        if compression != "gzip":
            return
        bits = metadata.bits_per_pixel
        remaining = pixels.length() - metadata.pixel_offset
        expected = image.size_x * image.size_y * bits // 8 * image.rgb_channel_count
        # some files are tagged gzip but hold raw pixels
        if remaining // image.plane_count >= expected:
            logger.warning("Payload tagged gzip has raw size; ignoring the compression tag")
            return
        metadata.gzip = True
        if not self.settings.eager_decompression:
            logger.debug("Leaving gzip payload compressed")
            return
        logger.debug("Decompressing pixel data")
        pixels.seek(metadata.pixel_offset)
        try:
            inflated = gzip.decompress(pixels.read(remaining))
        except (OSError, EOFError, zlib.error) as err:
            raise CorruptDataError(f"Error uncompressing gzip'ed data: {err}") from err
        needed = image.plane_count * image.plane_size
        if len(inflated) < needed:
            raise CorruptDataError(
                f"gzip payload inflates to {len(inflated)} bytes; "
                f"{image.plane_count} planes need {needed}"
            )
        metadata.inflated = inflated


class IcsReader(Reader):
    """Reads planes from raw, gzip-inflated or channel-interleaved payloads."""

    def __init__(self, fmt):
        super().__init__(fmt)
        self._payload: Optional[bytes] = None

    def set_source(self, source, metadata=None) -> None:
        super().set_source(source, metadata)
        meta = self.metadata
        if self._owns_stream:
            return
        if not meta.version_two and (
            self.stream.name is None or self.stream.name != meta.pixels_path
        ):
            self.close()
            raise ConfigurationError(
                "An ICS 1.0 header stream holds no pixels; bind the .ids stream or a path"
            )
        if not meta.pixels_located:
            try:
                self.format.create_parser().locate_pixels(self.stream, meta)
            except Exception:
                self.close()
                raise

    def open_source(self, path: str, metadata: IcsMetadata) -> RandomAccessStream:
        if metadata.pixels_path is None:
            raise ConfigurationError(f"{path} has no pixel data file")
        if metadata.pixels_located:
            return RandomAccessStream.from_path(metadata.pixels_path)
        # parsed without companion files; resolve the payload now
        if not os.path.exists(metadata.pixels_path):
            raise MissingCompanionFileError(f"IDS file {metadata.pixels_path} not found")
        stream = RandomAccessStream.from_path(metadata.pixels_path)
        try:
            self.format.create_parser().locate_pixels(stream, metadata)
        except Exception:
            stream.close()
            raise
        return stream

    def _whole_payload(self) -> bytes:
        meta = self.metadata
        if meta.inflated is not None:
            return meta.inflated
        if self._payload is None:
            logger.debug("Buffering the pixel payload")
            self.stream.seek(meta.pixel_offset)
            self._payload = self.stream.read(self.stream.length() - meta.pixel_offset)
        return self._payload

    def open_region(self, image_index, plane_index, buf, x, y, w, h) -> None:
        meta = self.metadata
        image = meta.get(image_index)
        plane_size = image.plane_size

        if meta.gzip and meta.inflated is None:
            raise UnsupportedCompressionError(
                "gzip payload was not decompressed; enable eager_decompression"
            )
        if (
            not image.is_rgb
            and image.size_c > MAX_RGB_CHANNELS
            and meta.channels_interleaved
        ):
            # channels are stored per pixel but served as separate planes
            channels = image.size_c
            bpp = image.bytes_per_pixel
            rest, channel = divmod(plane_index, channels)
            payload = self._whole_payload()
            start = rest * plane_size * channels
            if len(payload) < start + plane_size * channels:
                raise CorruptDataError(
                    f"Pixel data ends at byte {len(payload)}; "
                    f"plane {plane_index} needs {start + plane_size * channels}"
                )
            block = np.frombuffer(
                payload,
                dtype=np.uint8,
                count=plane_size * channels,
                offset=start,
            ).reshape(image.size_y, image.size_x, channels, bpp)
            region = block[y:y + h, x:x + w, channel]
            buf[: w * h * bpp] = region.tobytes()
        elif meta.inflated is not None:
            tools.copy_region(meta.inflated, plane_size * plane_index, image, x, y, w, h, buf)
        else:
            tools.read_plane(
                self.stream,
                image,
                meta.pixel_offset + plane_size * plane_index,
                x, y, w, h,
                buf,
            )

        if meta.invert_y:
            row_length = w * image.bytes_per_pixel * image.rgb_channel_count
            tools.flip_rows(buf, row_length, h)

    def reset(self) -> None:
        self._payload = None


# -- writing --


def byte_order_tokens(image: ImageMetadata) -> List[int]:
    """Byte order list that the header reader decodes to ``image.little_endian``."""
    bits = image.bits_per_pixel
    little = image.little_endian
    if bits < 32:
        little = not little
    if image.pixel_kind.floating_point:
        ascending = little
    else:
        ascending = not little
    tokens = list(range(1, image.bytes_per_pixel + 1))
    return tokens if ascending else tokens[::-1]


def format_header(image: ImageMetadata, version_two: bool) -> str:
    """Render the header text for one image, ending with the ``end`` line."""
    names = {"Z": "z", "C": "ch", "T": "t"}
    if image.is_rgb:
        order = ["bits", "ch", "x", "y"] + [
            names[letter] for letter in image.dimension_order[2:] if letter != "C"
        ]
    else:
        order = ["bits", "x", "y"] + [names[letter] for letter in image.dimension_order[2:]]
    lengths = {
        "bits": image.bits_per_pixel,
        "x": image.size_x,
        "y": image.size_y,
        "z": image.size_z,
        "ch": image.size_c,
        "t": image.size_t,
    }
    kind = image.pixel_kind
    lines = [
        "\t",
        "ics_version\t" + ("2.0" if version_two else "1.0"),
        f"layout\tparameters\t{len(order)}",
        "layout\torder\t" + " ".join(order),
        "layout\tsizes\t" + " ".join(str(lengths[token]) for token in order),
        f"layout\tsignificant_bits\t{kind.bits_per_pixel}",
        "representation\tformat\t" + ("real" if kind.floating_point else "integer"),
        "representation\tsign\t" + ("signed" if kind.signed else "unsigned"),
        "representation\tcompression\tuncompressed",
        "representation\tbyte_order\t" + " ".join(str(t) for t in byte_order_tokens(image)),
    ]
    sizes = image.acquisition.physical_sizes
    axes = {"x": Axis.X, "y": Axis.Y, "z": Axis.Z, "ch": Axis.CHANNEL, "t": Axis.TIME}
    if sizes:
        scale = ["1.0"] + [str(sizes.get(axes[token], 1.0)) for token in order[1:]]
        lines.append("parameter\tscale\t" + " ".join(scale))
    lines.append("end")
    return "\n".join(lines) + "\n"


class IcsWriter(Writer):
    """
    Writes one uncompressed image.

    An ``.ids`` destination produces a version 1.0 pair with the header in
    the sibling ``.ics`` file; any other destination receives a
    self-contained version 2.0 file.
    """

    def __init__(self, fmt):
        super().__init__(fmt)
        self._pixel_offset = 0

    def setup_dest(self) -> None:
        if self.metadata.image_count != 1:
            raise ConfigurationError("ICS files hold exactly one image")
        image = self.metadata.get(0)
        if image.is_rgb and not image.interleaved and image.rgb_channel_count > 1:
            raise ConfigurationError("ICS stores RGB samples interleaved only")

        name = self.stream.name or ""
        header_path, _ = companion_paths(name)
        if name and header_path != name:
            text = format_header(image, version_two=False)
            with RandomAccessStream.from_path(header_path, "wb") as header:
                header.write_string(text, "latin-1")
            self._pixel_offset = 0
            logger.debug(f"Wrote ICS header to {header_path}")
        else:
            text = format_header(image, version_two=True)
            self.stream.seek(0)
            self.stream.write_string(text, "latin-1")
            self._pixel_offset = len(text.encode("latin-1"))

    def save_region(self, image_index, plane_index, buf, x, y, w, h) -> None:
        image = self.metadata.get(image_index)
        pixel = image.bytes_per_pixel * image.rgb_channel_count
        row_length = w * pixel
        plane_offset = self._pixel_offset + plane_index * image.plane_size
        for row in range(h):
            self.stream.seek(plane_offset + ((y + row) * image.size_x + x) * pixel)
            self.stream.write(buf[row * row_length:(row + 1) * row_length])

    def finish(self) -> None:
        image = self.metadata.get(0)
        total = self._pixel_offset + image.plane_count * image.plane_size
        length = self.stream.length()
        if length < total:
            self.stream.seek(length)
            self.stream.write(bytes(total - length))
        self.stream.flush()


class IcsFormat(Format):
    """Image Cytometry Standard, versions 1.0 and 2.0."""

    name = "Image Cytometry Standard"
    suffixes = ("ics", "ids")
    checker_class = IcsChecker
    parser_class = IcsParser
    reader_class = IcsReader
    writer_class = IcsWriter
