"""Parametric plate, stencil and relief mesh synthesis."""

from platecraft.contracts import (
    ArrayKind,
    ArraySpec,
    BevelKind,
    BevelSpec,
    EngineConfig,
    HeightfieldParams,
    HoleSpec,
    PlateParams,
    PlateShape,
    QRParams,
    ReliefStyle,
    ShapeSpec,
    TextItem,
)
from platecraft.errors import (
    BooleanError,
    DegenerateGeometryError,
    GlyphError,
    MeshBooleanError,
    PlatecraftError,
)
from platecraft.glyphs import GlyphLibrary, TextPathGlyphProvider
from platecraft.layout import replicate
from platecraft.lru import LRUCache
from platecraft.mesh import Bounds, MaterialGroup, TriangleMesh
from platecraft.plates import PlateEngine

__all__ = [
    "ArrayKind",
    "ArraySpec",
    "BevelKind",
    "BevelSpec",
    "BooleanError",
    "Bounds",
    "DegenerateGeometryError",
    "EngineConfig",
    "GlyphError",
    "GlyphLibrary",
    "HeightfieldParams",
    "HoleSpec",
    "LRUCache",
    "MaterialGroup",
    "MeshBooleanError",
    "PlateEngine",
    "PlateParams",
    "PlateShape",
    "PlatecraftError",
    "QRParams",
    "ReliefStyle",
    "ShapeSpec",
    "TextItem",
    "TriangleMesh",
    "replicate",
]
