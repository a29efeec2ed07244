"""Structural description of images: axis extents, pixel kind and flags.

This module contains the pure-data side of the pipeline:
- ``ImageMetadata``: one logical image (axis lengths, pixel kind, byte order,
  RGB/interleave flags and a free-form :class:`MetaTable`)
- ``AcquisitionMetadata``: instrument and physical annotations a parser could
  resolve into typed values
- ``Metadata``: a parsed dataset, i.e. the list of images plus the
  dataset-level table and the files it was read from

None of these objects carry stream or decoder state; readers keep such
state themselves so that a parsed description can be copied and shared.
"""

from __future__ import annotations

import copy
from typing import Dict, List, Optional, Tuple

from attrs import define, field

from .enums import CANONICAL_AXES, Axis, PixelKind
from .errors import CorruptHeaderError, IndexOutOfRangeError
from .metatable import MetaTable

#: Largest channel count that can still be composited as RGB samples.
MAX_RGB_CHANNELS = 4


@define
class AcquisitionMetadata:
    """Typed instrument and physical annotations for one image.

    Attributes:
        name: Image name
        description: Free-text image description
        creation_date: ISO 8601 acquisition date
        experimenter: Name of the person who acquired the image
        physical_sizes: Spacing per axis (micrometers for X/Y/Z, seconds for
            time, wavelength increment for channels)
        stage_position: Stage coordinates keyed by X, Y and Z
        channel_names: Channel name per channel index
        emission_wavelengths: One entry per channel, None when unknown
        excitation_wavelengths: One entry per channel, None when unknown
        pinhole_sizes: Pinhole size per channel
        detector_gains: Gain per detector index
        laser_wavelengths: Wavelength in nm per laser index
    """

    name: Optional[str] = None
    description: Optional[str] = None
    creation_date: Optional[str] = None
    experimenter: Optional[str] = None
    objective_model: Optional[str] = None
    objective_immersion: Optional[str] = None
    objective_na: Optional[float] = None
    objective_working_distance: Optional[float] = None
    objective_magnification: Optional[int] = None
    physical_sizes: Dict[Axis, float] = field(factory=dict)
    stage_position: Dict[Axis, float] = field(factory=dict)
    channel_names: Dict[int, str] = field(factory=dict)
    emission_wavelengths: List[Optional[int]] = field(factory=list)
    excitation_wavelengths: List[Optional[int]] = field(factory=list)
    pinhole_sizes: List[float] = field(factory=list)
    detector_gains: Dict[int, float] = field(factory=dict)
    laser_wavelengths: Dict[int, int] = field(factory=dict)


@define
class ImageMetadata:
    """Structural description of one image within a dataset.

    Z, channel and time extents default to 1 when absent; X and Y must be
    set before any plane can be read or written. The number of planes is
    derived from the axis lengths and is never stored.

    Attributes:
        axis_lengths: Extent per axis
        pixel_kind: Numeric kind of each sample, None until resolved
        little_endian: Byte order of multi-byte samples in storage
        rgb: Channels are composited per pixel rather than stored as planes.
            Only effective while the channel count is at most 4.
        interleaved: RGB samples are adjacent within a pixel
        dimension_order: Storage order of the axes, e.g. ``"XYZCT"``
        table: Format-specific annotations for this image
        acquisition: Typed instrument and physical annotations
    """

    axis_lengths: Dict[Axis, int] = field(factory=dict)
    pixel_kind: Optional[PixelKind] = None
    little_endian: bool = True
    rgb: bool = False
    interleaved: bool = False
    indexed: bool = False
    false_color: bool = False
    thumbnail: bool = False
    order_certain: bool = True
    metadata_complete: bool = False
    dimension_order: str = "XYZCT"
    table: MetaTable = field(factory=MetaTable)
    acquisition: AcquisitionMetadata = field(factory=AcquisitionMetadata)

    # -- axis access --

    def axis_length(self, axis: Axis) -> int:
        """Return the extent of ``axis`` (0 for unset X/Y, 1 for unset Z/C/T)."""
        default = 0 if axis in (Axis.X, Axis.Y) else 1
        return self.axis_lengths.get(axis, default)

    def set_axis_length(self, axis: Axis, length: int) -> None:
        self.axis_lengths[axis] = int(length)

    @property
    def size_x(self) -> int:
        return self.axis_length(Axis.X)

    @property
    def size_y(self) -> int:
        return self.axis_length(Axis.Y)

    @property
    def size_z(self) -> int:
        return self.axis_length(Axis.Z)

    @property
    def size_c(self) -> int:
        return self.axis_length(Axis.CHANNEL)

    @property
    def size_t(self) -> int:
        return self.axis_length(Axis.TIME)

    # -- derived geometry --

    @property
    def is_rgb(self) -> bool:
        """Whether channels are effectively stored as samples of one pixel."""
        return self.rgb and self.size_c <= MAX_RGB_CHANNELS

    @property
    def rgb_channel_count(self) -> int:
        """Number of samples stored per pixel."""
        return self.size_c if self.is_rgb else 1

    @property
    def effective_size_c(self) -> int:
        """Number of channel planes."""
        return 1 if self.is_rgb else self.size_c

    @property
    def plane_count(self) -> int:
        return self.size_z * self.size_t * self.effective_size_c

    @property
    def bytes_per_pixel(self) -> int:
        if self.pixel_kind is None:
            return 0
        return self.pixel_kind.bytes_per_pixel

    @property
    def bits_per_pixel(self) -> int:
        return self.bytes_per_pixel * 8

    @property
    def plane_size(self) -> int:
        """Size in bytes of one full plane including all RGB samples."""
        return self.size_x * self.size_y * self.bytes_per_pixel * self.rgb_channel_count

    @property
    def dtype(self):
        """numpy dtype of one sample in storage byte order."""
        if self.pixel_kind is None:
            return None
        return self.pixel_kind.dtype(self.little_endian)

    def zct_coords(self, plane_index: int) -> Tuple[int, int, int]:
        """Convert a plane index into (z, c, t) following ``dimension_order``.

        Raises:
            IndexOutOfRangeError: If plane_index is not a valid plane
        """
        if not 0 <= plane_index < self.plane_count:
            raise IndexOutOfRangeError(
                f"Plane index:{plane_index} must be in [0, {self.plane_count})"
            )
        sizes = {
            "Z": self.size_z,
            "C": self.effective_size_c,
            "T": self.size_t,
        }
        coords = {}
        remainder = plane_index
        for letter in self.dimension_order[2:]:
            coords[letter] = remainder % sizes[letter]
            remainder //= sizes[letter]
        return coords["Z"], coords["C"], coords["T"]

    def plane_index(self, z: int, c: int, t: int) -> int:
        """Inverse of :meth:`zct_coords`."""
        sizes = {"Z": self.size_z, "C": self.effective_size_c, "T": self.size_t}
        coords = {"Z": z, "C": c, "T": t}
        for letter, value in coords.items():
            if not 0 <= value < sizes[letter]:
                raise IndexOutOfRangeError(
                    f"{letter}:{value} must be in [0, {sizes[letter]})"
                )
        index = 0
        for letter in reversed(self.dimension_order[2:]):
            index = index * sizes[letter] + coords[letter]
        return index

    # -- invariants --

    def validate(self) -> None:
        """Check the invariants required before plane I/O.

        Raises:
            CorruptHeaderError: If X or Y is unresolved, any axis length is not
                positive, the dimension order is malformed or the pixel kind
                is unresolved
        """
        if self.size_x <= 0 or self.size_y <= 0:
            raise CorruptHeaderError(
                f"Image size {self.size_x}x{self.size_y} is not valid"
            )
        for axis, length in self.axis_lengths.items():
            if length <= 0:
                raise CorruptHeaderError(f"Axis {axis.name} has length {length}")
        if sorted(self.dimension_order) != sorted("XYZCT") or not (
            self.dimension_order.startswith("XY")
        ):
            raise CorruptHeaderError(
                f"Dimension order {self.dimension_order!r} is not valid"
            )
        if self.pixel_kind is None:
            raise CorruptHeaderError("Pixel kind has not been resolved")

    def copy(self) -> "ImageMetadata":
        return copy.deepcopy(self)

    @classmethod
    def create(
        cls,
        size_x: int,
        size_y: int,
        pixel_kind: PixelKind,
        size_z: int = 1,
        size_c: int = 1,
        size_t: int = 1,
        **kwargs,
    ) -> "ImageMetadata":
        """Build a validated image description from plain sizes.

        Examples:
            >>> meta = ImageMetadata.create(64, 32, PixelKind.UINT16, size_z=5)
            >>> meta.plane_count
            5
        """
        lengths = dict(
            zip(CANONICAL_AXES, (size_x, size_y, size_z, size_c, size_t))
        )
        meta = cls(axis_lengths=lengths, pixel_kind=pixel_kind, **kwargs)
        meta.validate()
        return meta


@define
class Metadata:
    """A parsed dataset: one or more images plus dataset-level annotations.

    Attributes:
        images: Per-image structural descriptions
        table: Dataset-level annotations
        format_name: Name of the format that produced this description
        dataset_name: Path or name of the dataset
        used_files: Every file that contributes to the dataset
    """

    images: List[ImageMetadata] = field(factory=list)
    table: MetaTable = field(factory=MetaTable)
    format_name: str = ""
    dataset_name: Optional[str] = None
    used_files: List[str] = field(factory=list)

    @property
    def image_count(self) -> int:
        return len(self.images)

    def get(self, image_index: int) -> ImageMetadata:
        """Return the description of one image.

        Raises:
            IndexOutOfRangeError: If image_index is not a valid image
        """
        if not 0 <= image_index < len(self.images):
            raise IndexOutOfRangeError(
                f"Image index:{image_index} must be in [0, {len(self.images)})"
            )
        return self.images[image_index]

    def __getitem__(self, image_index: int) -> ImageMetadata:
        return self.get(image_index)

    def add_image(self, image: Optional[ImageMetadata] = None) -> ImageMetadata:
        """Append a new (or given) image description and return it."""
        if image is None:
            image = ImageMetadata()
        self.images.append(image)
        return image

    def validate(self) -> None:
        for image in self.images:
            image.validate()

    def copy(self) -> "Metadata":
        return copy.deepcopy(self)
