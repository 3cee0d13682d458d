"""Exception types raised inside the geometry engine.

Builders recover from these close to the source; they only escape when a
caller uses a low-level helper directly.
"""


class PlatecraftError(Exception):
    """Base exception for geometry synthesis errors."""
    pass


class DegenerateGeometryError(PlatecraftError):
    """Input dimensions or rings cannot produce a solid."""
    pass


class BooleanError(PlatecraftError):
    """The planar polygon boolean engine failed."""
    pass


class MeshBooleanError(PlatecraftError):
    """A triangle-mesh boolean evaluation failed."""
    pass


class GlyphError(PlatecraftError):
    """The glyph-outline provider could not produce contours."""
    pass
