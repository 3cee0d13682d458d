"""
Extrude planar polygons (with holes) into closed prisms, optionally bevelled.

A prism is described by a vertical *profile*: a list of ``(inset, z)``
layers from bottom to top. Each ring of the polygon is offset inward by
``inset`` at every layer; consecutive layers are stitched with wall quads
and the first/last layers are closed with ear-clipped caps. Without a
bevel the profile is just ``[(0, 0), (0, depth)]``.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
import trimesh
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry

from platecraft.contracts import BevelKind, BevelSpec
from platecraft.mesh import MeshBuilder, TriangleMesh
from platecraft.outlines import dedupe_ring
from platecraft.polygon_ops import as_polygons, normalize_winding, signed_area

logger = logging.getLogger(__name__)

MAX_MITER = 4.0
# Inset scales tried before a polygon falls back to straight walls.
BEVEL_SCALES = (1.0, 0.5, 0.25, 0.125)
MIN_EDGE = 1e-6


def bevel_profile(depth: float, bevel: Optional[BevelSpec] = None) -> List[Tuple[float, float]]:
    """(inset, z) layers from the bottom cap to the top cap."""
    if bevel is None or bevel.thickness <= 0 or bevel.segments < 1:
        return [(0.0, 0.0), (0.0, float(depth))]

    t = float(bevel.thickness)
    s = float(bevel.size)
    n = int(bevel.segments)
    bottom: List[Tuple[float, float]] = []
    top: List[Tuple[float, float]] = []
    for i in range(n + 1):
        f = i / n
        if bevel.kind is BevelKind.ROUND:
            a = f * math.pi / 2
            bottom.append((s * (1 - math.sin(a)), t * (1 - math.cos(a))))
            top.append((s * (1 - math.cos(a)), t + depth + t * math.sin(a)))
        else:
            bottom.append((s * (1 - f), t * f))
            top.append((s * f, t + depth + t * f))

    layers = bottom + top
    out = [layers[0]]
    for layer in layers[1:]:
        if abs(layer[0] - out[-1][0]) > 1e-12 or abs(layer[1] - out[-1][1]) > 1e-12:
            out.append(layer)
    return out


def offset_ring(ring: np.ndarray, inset: float) -> np.ndarray:
    """Move every vertex of *ring* by ``inset`` toward the material.

    The ring must follow the outer-CCW / hole-CW convention so that the
    right-hand edge normal points away from the material.
    """
    if inset == 0:
        return ring.copy()
    edges = np.roll(ring, -1, axis=0) - ring
    lengths = np.linalg.norm(edges, axis=1, keepdims=True)
    lengths[lengths < 1e-12] = 1.0
    normals = np.column_stack([edges[:, 1], -edges[:, 0]]) / lengths
    prev_normals = np.roll(normals, 1, axis=0)
    miter = prev_normals + normals
    miter_len = np.linalg.norm(miter, axis=1, keepdims=True)
    miter = np.where(miter_len > 1e-12, miter / np.where(miter_len > 1e-12, miter_len, 1.0), normals)
    cos_half = np.sum(miter * normals, axis=1, keepdims=True)
    scale = 1.0 / np.clip(cos_half, 1.0 / MAX_MITER, None)
    return ring - inset * miter * scale


def _ring_array(coords: Sequence[Tuple[float, float]]) -> Optional[np.ndarray]:
    pts = dedupe_ring([(float(x), float(y)) for x, y in coords])
    if len(pts) < 3:
        return None
    ring = np.asarray(pts, dtype=float)
    # earcut drops collinear points from caps; walls must use the same vertices
    prev = np.roll(ring, 1, axis=0)
    nxt = np.roll(ring, -1, axis=0)
    cross = (ring[:, 0] - prev[:, 0]) * (nxt[:, 1] - prev[:, 1]) - (
        ring[:, 1] - prev[:, 1]) * (nxt[:, 0] - prev[:, 0])
    ring = ring[np.abs(cross) > 1e-12]
    if len(ring) < 3:
        return None
    return ring


def _add_walls(builder: MeshBuilder, layers: List[np.ndarray], zs: List[float]) -> None:
    for k in range(len(layers) - 1):
        lower, upper = layers[k], layers[k + 1]
        n = len(lower)
        a0 = np.column_stack([lower, np.full(n, zs[k])])
        b0 = np.column_stack([upper, np.full(n, zs[k + 1])])
        a1 = np.roll(a0, -1, axis=0)
        b1 = np.roll(b0, -1, axis=0)
        quads = np.stack([a0, a1, b1, b0], axis=1)

        seg = np.linalg.norm(np.roll(lower, -1, axis=0) - lower, axis=1)
        u0 = np.concatenate([[0.0], np.cumsum(seg)[:-1]])
        u1 = u0 + seg
        v0 = np.full(n, zs[k])
        v1 = np.full(n, zs[k + 1])
        uvs = np.stack(
            [np.column_stack([u0, v0]), np.column_stack([u1, v0]),
             np.column_stack([u1, v1]), np.column_stack([u0, v1])],
            axis=1,
        )
        builder.add_quads(quads, uvs)


def _points_on_segment(points: np.ndarray, a: np.ndarray, b: np.ndarray, tol: float = 1e-7) -> np.ndarray:
    """Indices of *points* strictly inside segment a-b, ordered from a to b."""
    ab = b - a
    length2 = float(ab @ ab)
    if length2 <= 0:
        return np.zeros(0, dtype=np.int64)
    ap = points - a
    t = ap @ ab / length2
    dist = np.abs(ab[0] * ap[:, 1] - ab[1] * ap[:, 0]) / math.sqrt(length2)
    inside = (dist <= tol) & (t * math.sqrt(length2) > tol) & ((1 - t) * math.sqrt(length2) > tol)
    hits = np.nonzero(inside)[0]
    return hits[np.argsort(t[hits])]


def _split_skipped_vertices(
    verts2d: np.ndarray, faces: np.ndarray, rings: List[np.ndarray],
) -> Tuple[np.ndarray, np.ndarray]:
    """Split cap triangles along outline edges that pass over ring vertices.

    Earcut can bridge straight across a point where a ring touches itself
    or another ring. The walls still use that vertex, so the cap must too.
    """
    verts, canon = np.unique(verts2d, axis=0, return_inverse=True)
    faces = canon.reshape(-1)[faces]
    edges = np.sort(faces[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2), axis=1)
    keys, counts = np.unique(edges, axis=0, return_counts=True)

    lookup = {p: i for i, p in enumerate(map(tuple, verts.tolist()))}
    ring_edges = set()
    for ring in rings:
        ids = [lookup[p] for p in map(tuple, ring.tolist())]
        ring_edges.update(tuple(sorted(e)) for e in zip(ids, ids[1:] + ids[:1]))

    spans = {}
    for i, j in keys[counts == 1].tolist():
        if (i, j) in ring_edges:
            continue
        inner = _points_on_segment(verts, verts[i], verts[j])
        if len(inner):
            spans[(i, j)] = inner.tolist()
    if not spans:
        return verts, faces

    def split(face):
        for k in range(3):
            a, b, c = face[k], face[(k + 1) % 3], face[(k + 2) % 3]
            inner = spans.get((min(a, b), max(a, b)))
            if inner is None:
                continue
            inner = [p for p in (inner if a < b else inner[::-1]) if p != c]
            chain = [a] + inner + [b]
            out = []
            for p, q in zip(chain, chain[1:]):
                out.extend(split([p, q, c]))
            return out
        return [face]

    result = []
    for face in faces.tolist():
        result.extend(split(face))
    logger.debug("split %d cap edge(s) at skipped ring vertices", len(spans))
    return verts, np.asarray(result, dtype=np.int64)


def _add_cap(builder: MeshBuilder, outer: np.ndarray, holes: List[np.ndarray], z: float, up: bool) -> None:
    polygon = Polygon(outer, holes)
    verts2d, faces = trimesh.creation.triangulate_polygon(polygon, engine="earcut")
    verts2d = np.asarray(verts2d, dtype=float)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        return
    verts2d, faces = _split_skipped_vertices(verts2d, faces, [outer] + list(holes))
    tri = verts2d[faces]
    cross = (tri[:, 1, 0] - tri[:, 0, 0]) * (tri[:, 2, 1] - tri[:, 0, 1]) - (
        tri[:, 1, 1] - tri[:, 0, 1]) * (tri[:, 2, 0] - tri[:, 0, 0])
    # slivers from split edges follow the majority winding
    flip = np.where(np.abs(cross) > 1e-12, cross < 0, cross.sum() < 0)
    faces = np.where(flip[:, None], faces[:, ::-1], faces)
    if not up:
        faces = faces[:, ::-1]
    verts3d = np.column_stack([verts2d, np.full(len(verts2d), z)])
    normal = np.array([0.0, 0.0, 1.0 if up else -1.0])
    builder.add_indexed(verts3d, faces, normals=np.tile(normal, (len(verts3d), 1)), uvs=verts2d)


def _layer_is_simple(rings: List[np.ndarray], layer: List[np.ndarray]) -> bool:
    """True when offset rings keep their winding and still bound a valid polygon."""
    for ring, moved in zip(rings, layer):
        if signed_area(ring) * signed_area(moved) <= 0:
            return False
        if np.linalg.norm(np.roll(moved, -1, axis=0) - moved, axis=1).min() < MIN_EDGE:
            return False
    return Polygon(layer[0], layer[1:]).is_valid


def bevel_layers(
    rings: List[np.ndarray], insets: Sequence[float],
) -> Tuple[List[List[np.ndarray]], float]:
    """Offset *rings* for every inset, shrinking the insets until all layers fit.

    Returns the layers and the scale applied to the insets; a scale of 0
    means the bevel could not fit at all and the walls are straight.
    """
    for scale in BEVEL_SCALES:
        layers = [[offset_ring(r, inset * scale) for r in rings] for inset in insets]
        if all(_layer_is_simple(rings, layer) for inset, layer in zip(insets, layers) if inset):
            return layers, scale
    return [[r.copy() for r in rings] for _ in insets], 0.0


def _extrude_polygon(
    builder: MeshBuilder, poly: Polygon, profile: List[Tuple[float, float]],
) -> float:
    outer = _ring_array(poly.exterior.coords)
    if outer is None:
        return 1.0
    rings = [outer] + [r for r in (_ring_array(i.coords) for i in poly.interiors) if r is not None]

    layers, scale = bevel_layers(rings, [inset for inset, _ in profile])
    zs = [z for _, z in profile]
    for k in range(len(rings)):
        _add_walls(builder, [layer[k] for layer in layers], zs)

    _add_cap(builder, layers[0][0], layers[0][1:], zs[0], up=False)
    _add_cap(builder, layers[-1][0], layers[-1][1:], zs[-1], up=True)
    return scale


def extrude(
    shape: Optional[BaseGeometry],
    depth: float,
    bevel: Optional[BevelSpec] = None,
    material_index: int = 0,
) -> TriangleMesh:
    """Extrude *shape* along +Z and centre the result on z = 0.

    The total height is ``depth + 2 * bevel.thickness``. Polygons whose
    outer ring has fewer than three distinct points are skipped. A bevel
    too wide for a polygon is narrowed, or dropped for that polygon, with
    a warning; the height is unchanged either way.
    """
    polygons = as_polygons(normalize_winding(shape))
    profile = bevel_profile(depth, bevel)
    if not polygons or profile[-1][1] <= 0:
        return TriangleMesh.empty()

    builder = MeshBuilder()
    builder.begin_group(material_index)
    scales = [_extrude_polygon(builder, poly, profile) for poly in polygons]
    mesh = builder.build()
    if mesh.is_empty:
        return mesh
    if min(scales) < 1.0:
        if min(scales) == 0.0:
            logger.warning("Bevel of %.2f mm does not fit %d polygon(s); using straight walls there",
                           bevel.size, scales.count(0.0))
        else:
            logger.warning("Bevel narrowed to %.2f mm to fit the outline", bevel.size * min(scales))
    total = profile[-1][1]
    logger.debug("extruded %d polygon(s): %d triangles, height %.3f",
                 len(polygons), mesh.triangle_count, total)
    return mesh.translated(dz=-total / 2.0)
