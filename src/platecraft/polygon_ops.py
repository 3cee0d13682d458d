"""Planar polygon booleans over shapely geometry.

Every entry point normalizes winding on the way in and on the way out
(outer rings counter-clockwise, holes clockwise), which is what the
extrusion builder and the cap triangulator expect.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import shapely
from shapely.errors import ShapelyError
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient
from shapely.ops import unary_union

from platecraft.errors import BooleanError

logger = logging.getLogger(__name__)

Polygonal = Union[Polygon, MultiPolygon]


def signed_area(ring) -> float:
    """Shoelace area; positive for counter-clockwise rings."""
    coords = np.asarray(getattr(ring, "coords", ring), dtype=float)
    if len(coords) < 3:
        return 0.0
    x = coords[:, 0]
    y = coords[:, 1]
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def as_polygons(geom: Optional[BaseGeometry]) -> List[Polygon]:
    """Non-empty polygon parts of *geom* (lines and points are dropped)."""
    if geom is None or geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        return [geom] if geom.area > 0 else []
    if isinstance(geom, (MultiPolygon, GeometryCollection)):
        out: List[Polygon] = []
        for part in geom.geoms:
            out.extend(as_polygons(part))
        return out
    return []


def repair(geom: BaseGeometry) -> BaseGeometry:
    if geom.is_valid:
        return geom
    fixed = shapely.make_valid(geom)
    polys = as_polygons(fixed)
    if not polys:
        return fixed.buffer(0)
    return MultiPolygon(polys) if len(polys) > 1 else polys[0]


def normalize_winding(geom: Optional[BaseGeometry]) -> MultiPolygon:
    """Repair *geom* and orient every part (outer CCW, holes CW)."""
    if geom is None or geom.is_empty:
        return MultiPolygon()
    polys = [orient(p, sign=1.0) for p in as_polygons(repair(geom))]
    return MultiPolygon(polys)


def to_multipolygon(geom: Optional[BaseGeometry]) -> MultiPolygon:
    return normalize_winding(geom)


def union(a: Optional[BaseGeometry], b: Optional[BaseGeometry]) -> MultiPolygon:
    try:
        result = normalize_winding(a).union(normalize_winding(b))
    except (ShapelyError, ValueError) as exc:
        raise BooleanError("union failed: %s" % exc) from exc
    return normalize_winding(result)


def difference(a: Optional[BaseGeometry], b: Optional[BaseGeometry]) -> MultiPolygon:
    try:
        result = normalize_winding(a).difference(normalize_winding(b))
    except (ShapelyError, ValueError) as exc:
        raise BooleanError("difference failed: %s" % exc) from exc
    return normalize_winding(result)


def union_all(cutters: Iterable[Optional[BaseGeometry]]) -> MultiPolygon:
    """Union every cutter into one geometry.

    Falls back to pairwise accumulation when the one-shot union raises; a
    cutter that still fails is dropped with a warning.
    """
    parts = [c for c in cutters if c is not None and not c.is_empty]
    if not parts:
        return MultiPolygon()
    try:
        return normalize_winding(unary_union([normalize_winding(p) for p in parts]))
    except (ShapelyError, ValueError, BooleanError) as exc:
        logger.warning("Batched cutter union failed (%s); retrying pairwise", exc)

    acc = MultiPolygon()
    for i, part in enumerate(parts):
        try:
            acc = union(acc, part)
        except BooleanError as exc:
            logger.warning("Dropping cutter %d from union: %s", i, exc)
    return acc


def subtract_cutters(
    base: Polygonal,
    cutters: Sequence[Optional[BaseGeometry]],
) -> Polygonal:
    """``base`` minus the union of ``cutters`` in a single difference pass.

    With no usable cutters the base is returned as-is without touching the
    boolean engine. Raises BooleanError if the final difference fails.
    """
    usable = [c for c in cutters if c is not None and not c.is_empty]
    if not usable:
        return base
    combined = union_all(usable)
    if combined.is_empty:
        return base
    return difference(base, combined)
