"""Contracts for the plate geometry engine.

Every parameter record here is a frozen dataclass so a snapshot can be used
directly as (part of) a cache key: two snapshots that compare equal always
produce the same mesh.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]

MIN_RESOLUTION = 1
MAX_RESOLUTION = 5
MAX_HEIGHTFIELD_RESOLUTION = 512


class PlateShape(Enum):
    """Plate silhouettes understood by the outline library."""
    SQUARE = "square"
    RECTANGLE = "rectangle"
    ROUNDED = "rounded"
    CIRCLE = "circle"
    OVAL = "oval"
    HEXAGON = "hexagon"
    PENTAGON = "pentagon"
    DIAMOND = "diamond"
    STAR = "star"
    CROSS = "cross"
    CLOUD = "cloud"
    SHIELD = "shield"
    BADGE = "badge"
    WAVE = "wave"
    HEART = "heart"
    NAMEPLATE = "nameplate"
    KEYCHAIN = "keychain"
    TAG = "tag"
    COASTER = "coaster"
    DOOR_SIGN = "door_sign"
    PET_BONE = "pet_bone"
    TROPHY = "trophy"
    FRAME = "frame"
    TRAY = "tray"


class BevelKind(Enum):
    """Edge profile between the plate wall and its flat caps."""
    ROUND = "round"
    CHAMFER = "chamfer"


class ReliefStyle(Enum):
    """Heightfield meshing strategy."""
    SMOOTH = "smooth"
    VOXEL = "voxel"


class ArrayKind(Enum):
    NONE = "none"
    RECTANGULAR = "rectangular"
    CIRCULAR = "circular"


def clamp_resolution(resolution: int) -> int:
    return max(MIN_RESOLUTION, min(MAX_RESOLUTION, int(resolution)))


@dataclass(frozen=True)
class ShapeSpec:
    """Geometry-relevant subset of a plate snapshot for one silhouette."""

    kind: PlateShape = PlateShape.SQUARE
    size: float = 40.0
    width: float = 80.0
    height: float = 50.0
    corner_radius: float = 0.0
    resolution: int = 3


@dataclass(frozen=True)
class HoleSpec:
    """Circular through-hole, positioned in world (plate parent) space."""

    x: float
    y: float
    radius: float


@dataclass(frozen=True)
class TextItem:
    """One line of text to cut through or emboss onto a plate."""

    content: str
    size: float = 12.0
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0       # degrees, counter-clockwise
    font: Optional[str] = None  # provider-specific font reference
    relief_height: float = 5.0


@dataclass(frozen=True)
class BevelSpec:
    """Edge bevel inserted between the side wall and each cap."""

    thickness: float            # extent along the extrusion axis
    size: float                 # inset of the cap relative to the wall
    segments: int = 1
    kind: BevelKind = BevelKind.CHAMFER

    @classmethod
    def for_resolution(
        cls,
        kind: BevelKind,
        size: float,
        thickness: float,
        resolution: int,
    ) -> "BevelSpec":
        """Pick the segment count for *kind* at a model resolution (1-5)."""
        if kind is BevelKind.ROUND:
            segments = max(2, clamp_resolution(resolution) * 2)
        else:
            segments = 1
        return cls(thickness=thickness, size=size, segments=segments, kind=kind)


@dataclass(frozen=True)
class PlateParams:
    """Parameter snapshot for a plate-style object."""

    shape: PlateShape = PlateShape.SQUARE
    size: float = 40.0
    width: float = 80.0
    height: float = 50.0
    thickness: float = 2.0
    corner_radius: float = 0.0
    position: Vec2 = (0.0, 0.0)
    rotation: float = 0.0
    holes: Tuple[HoleSpec, ...] = ()
    text_items: Tuple[TextItem, ...] = ()
    bevel_enabled: bool = False
    bevel_kind: BevelKind = BevelKind.ROUND
    bevel_size: float = 2.0
    resolution: int = 3
    tray_border_width: float = 5.0
    tray_border_height: float = 5.0

    def shape_spec(self, kind: Optional[PlateShape] = None) -> ShapeSpec:
        return ShapeSpec(
            kind=kind or self.shape,
            size=self.size,
            width=self.width,
            height=self.height,
            corner_radius=self.corner_radius,
            resolution=self.resolution,
        )


@dataclass(frozen=True)
class HeightfieldParams:
    """Raster relief settings.

    ``size`` is the physical width; the depth follows the source image
    aspect ratio. ``threshold`` is compared against the 0-255 cell value.
    """

    size: float = 100.0
    thickness: float = 5.0
    threshold: float = 128.0
    invert: bool = False
    smoothing: float = 1.0
    resolution: int = 150
    style: ReliefStyle = ReliefStyle.VOXEL
    rotation: float = 0.0
    offset: Vec2 = (0.0, 0.0)
    base_z: float = 0.0


@dataclass(frozen=True)
class QRParams:
    """QR plate settings; ``margin`` is physical padding in mm."""

    size: float = 50.0
    depth: float = 2.0
    invert: bool = False        # False: dark modules raised
    margin: float = 1.0
    through: bool = False       # hollow modules cut all the way through
    base_thickness: float = 2.0
    corner_radius: float = 0.0
    resolution: int = 3


@dataclass(frozen=True)
class ArraySpec:
    kind: ArrayKind = ArrayKind.NONE
    count_x: int = 3
    count_y: int = 1
    spacing_x: float = 60.0
    spacing_y: float = 60.0
    count: int = 6
    radius: float = 60.0


@dataclass(frozen=True)
class EngineConfig:
    """Engine-wide knobs that are not part of a parameter snapshot."""

    plate_cache_size: int = 20
    glyph_cache_size: int = 100
    heightfield_cache_size: int = 20
    force_csg: bool = False
    csg_engine: str = "manifold"
    cutter_overshoot: float = 0.5
