"""Glyph outlines for text cutters and embossed lettering.

Fonts are an external concern: a provider turns a string into closed 2D
contours, and this module nests those contours into filled polygons with
the even-odd rule, caches them, and places them on a plate.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

from matplotlib.font_manager import FontProperties
from matplotlib.textpath import TextPath
from shapely import affinity
from shapely.geometry import MultiPolygon, Polygon
from shapely.ops import unary_union

from platecraft.contracts import TextItem, Vec2
from platecraft.coords import world_to_shape
from platecraft.errors import GlyphError
from platecraft.lru import LRUCache
from platecraft.outlines import dedupe_ring
from platecraft.polygon_ops import as_polygons, normalize_winding, repair

logger = logging.getLogger(__name__)

MIN_CONTOUR_AREA = 1e-6


class GlyphOutlineProvider(Protocol):
    """Source of closed glyph contours for a string at a given size."""

    def contours(self, text: str, size: float, font: Optional[str] = None) -> List[List[Vec2]]:
        ...


class TextPathGlyphProvider:
    """Glyph contours from matplotlib's font machinery.

    ``font`` (per call) or ``default_font`` is a path to a TTF/OTF file; with
    neither, matplotlib's default sans-serif face is used. ``size`` is the
    em height in the caller's units (mm).
    """

    def __init__(self, default_font: Optional[str] = None):
        self.default_font = default_font

    def contours(self, text: str, size: float, font: Optional[str] = None) -> List[List[Vec2]]:
        fname = font or self.default_font
        prop = FontProperties(fname=fname) if fname else FontProperties()
        try:
            path = TextPath((0, 0), text, size=size, prop=prop, usetex=False)
            loops = path.to_polygons()
        except (RuntimeError, ValueError, OSError) as exc:
            raise GlyphError("cannot outline %r: %s" % (text, exc)) from exc
        return [[(float(x), float(y)) for x, y in loop] for loop in loops]


def contours_to_polygon(contours: Sequence[Sequence[Vec2]]) -> MultiPolygon:
    """Nest closed contours by containment depth and fill with even-odd."""
    polys: List[Polygon] = []
    for contour in contours:
        pts = dedupe_ring(contour)
        if len(pts) < 3:
            continue
        for part in as_polygons(repair(Polygon(pts))):
            if part.area > MIN_CONTOUR_AREA:
                polys.append(part)
    if not polys:
        return MultiPolygon()

    order = sorted(range(len(polys)), key=lambda i: polys[i].area)
    parent = [-1] * len(polys)
    for i in order:
        best_area = float("inf")
        for j, candidate in enumerate(polys):
            if i == j or candidate.area <= polys[i].area:
                continue
            if candidate.area < best_area and candidate.contains(polys[i].representative_point()) \
                    and candidate.contains(polys[i]):
                best_area = candidate.area
                parent[i] = j

    depth = []
    for i in range(len(polys)):
        d, k = 0, parent[i]
        while k != -1 and d <= len(polys):
            d += 1
            k = parent[k]
        depth.append(d)

    # each even-depth contour is a shell; its direct odd-depth children cut it
    shells = []
    for i, poly in enumerate(polys):
        if depth[i] % 2:
            continue
        children = [polys[k] for k in range(len(polys)) if parent[k] == i]
        shells.append(poly.difference(unary_union(children)) if children else poly)
    return normalize_winding(unary_union(shells))


class GlyphLibrary:
    """Cached glyph outlines plus placement onto plates."""

    def __init__(
        self,
        provider: Optional[GlyphOutlineProvider] = None,
        cache: Optional[LRUCache] = None,
        cache_size: int = 100,
    ):
        self.provider = provider or TextPathGlyphProvider()
        self.cache = cache if cache is not None else LRUCache(cache_size)

    def outline(self, text: str, size: float, font: Optional[str] = None) -> MultiPolygon:
        """Filled outline of *text* with its baseline origin at (0, 0).

        Raises GlyphError when the provider fails.
        """
        if not text or not text.strip() or size <= 0:
            return MultiPolygon()
        key = (text, float(size), font)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("glyph cache hit for %r", text)
            return cached
        outline = contours_to_polygon(self.provider.contours(text, size, font))
        self.cache.set(key, outline)
        return outline

    def cutter(
        self,
        item: TextItem,
        plate_position: Vec2 = (0.0, 0.0),
        plate_rotation: float = 0.0,
    ) -> Optional[MultiPolygon]:
        """Outline of *item* centred, rotated and placed in plate shape space.

        Returns None (and logs) when the item has no usable outline.
        """
        try:
            outline = self.outline(item.content, item.size, item.font)
        except GlyphError as exc:
            logger.warning("Skipping text %r: %s", item.content, exc)
            return None
        if outline.is_empty:
            return None

        minx, miny, maxx, maxy = outline.bounds
        placed = affinity.translate(outline, -(minx + maxx) / 2, -(miny + maxy) / 2)
        angle = item.rotation - plate_rotation
        if angle:
            placed = affinity.rotate(placed, angle, origin=(0, 0))
        x, y = world_to_shape((item.x, item.y), plate_position, plate_rotation)
        return normalize_winding(affinity.translate(placed, x, y))
