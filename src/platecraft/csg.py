"""
Triangle-mesh boolean fallback.

Used for solids that cannot be expressed as one planar outline (a tray's
cavity sits on top of its floor). Inputs are sanitized before evaluation
and every cutter is applied on its own so a single bad cutter cannot sink
the whole shape.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import numpy as np
import trimesh
from shapely.geometry.base import BaseGeometry

from platecraft.errors import MeshBooleanError
from platecraft.extrusion import extrude
from platecraft.mesh import TriangleMesh, compute_vertex_normals

logger = logging.getLogger(__name__)

DifferenceFn = Callable[[TriangleMesh, TriangleMesh], TriangleMesh]


def is_valid_mesh(mesh: Optional[TriangleMesh]) -> bool:
    """At least one indexed triangle over non-empty, in-range positions."""
    if mesh is None or mesh.indices is None or mesh.vertex_count == 0:
        return False
    flat = mesh.indices.reshape(-1)
    if len(flat) < 3:
        return False
    return bool(flat.min() >= 0 and flat.max() < mesh.vertex_count)


def sanitize_mesh(mesh: Optional[TriangleMesh]) -> Optional[TriangleMesh]:
    """Indexed, NaN-free copy with normals and uvs, or None if unusable."""
    if mesh is None or mesh.vertex_count == 0:
        return None
    positions = np.nan_to_num(mesh.positions, nan=0.0, posinf=0.0, neginf=0.0)
    indices = mesh.face_indices()

    normals = mesh.normals
    if normals is None or len(normals) != len(positions):
        normals = compute_vertex_normals(positions, indices) if len(indices) else np.zeros_like(positions)
    else:
        normals = np.nan_to_num(normals, nan=0.0, posinf=0.0, neginf=0.0)

    uvs = mesh.uvs
    if uvs is None or len(uvs) != len(positions):
        uvs = np.zeros((len(positions), 2))

    cleaned = TriangleMesh(positions, indices, normals, uvs, mesh.groups)
    if not is_valid_mesh(cleaned):
        return None
    return cleaned


def manifold_difference(a: TriangleMesh, b: TriangleMesh, engine: str = "manifold") -> TriangleMesh:
    """``a - b`` evaluated by trimesh's boolean backend."""
    try:
        result = trimesh.boolean.difference([a.to_trimesh(), b.to_trimesh()], engine=engine)
    except Exception as exc:
        raise MeshBooleanError("mesh difference failed: %s" % exc) from exc
    return TriangleMesh.from_trimesh(result)


def subtract(
    base: TriangleMesh,
    cutters: Sequence[Optional[TriangleMesh]],
    difference: Optional[DifferenceFn] = None,
) -> TriangleMesh:
    """Subtract *cutters* from *base* one after another.

    A cutter that is invalid, raises, or produces an invalid intermediate is
    skipped; the loop continues with the mesh as it was before that cutter.
    """
    op = difference or manifold_difference
    current = sanitize_mesh(base)
    if current is None:
        logger.warning("CSG base mesh is empty or invalid; nothing to subtract from")
        return TriangleMesh.empty()

    for i, cutter in enumerate(cutters):
        cleaned = sanitize_mesh(cutter)
        if cleaned is None:
            logger.warning("Skipping CSG cutter %d: empty or invalid mesh", i)
            continue
        try:
            result = op(current, cleaned)
        except Exception as exc:
            logger.warning("Skipping CSG cutter %d: %s", i, exc)
            continue
        result = sanitize_mesh(result)
        if result is None:
            logger.warning("Skipping CSG cutter %d: boolean produced an invalid mesh", i)
            continue
        current = result
    return current


def build_tray_solid(
    outer: BaseGeometry,
    inner: BaseGeometry,
    cutters: Sequence[BaseGeometry],
    base_thickness: float,
    border_height: float,
    difference: Optional[DifferenceFn] = None,
    overshoot: float = 0.5,
) -> TriangleMesh:
    """Tray as one block minus a cavity and through-cutters.

    The block spans ``-t/2 .. t/2 + border_height`` so the floor matches a
    plain plate of thickness ``t``; the cavity starts at the top of the floor.
    """
    t = float(base_thickness)
    h = max(0.0, float(border_height))
    block = extrude(outer, t + h).translated(dz=h / 2)

    solids = []
    if h > 0:
        cavity_height = h + overshoot
        solids.append(extrude(inner, cavity_height).translated(dz=t / 2 + cavity_height / 2))

    through = (t + h) + 2 * overshoot
    centre = h / 2  # mid-height of the block
    for cutter in cutters:
        solids.append(extrude(cutter, through).translated(dz=centre))

    return subtract(block, solids, difference)
