"""QR code plates built from a module matrix.

Encoding text into modules is left to an external encoder; this module only
turns the boolean grid (True = dark) into solids:

* relief: dark modules stand ``depth`` above a base plate;
* hollow (``invert``): light modules and the padding border are raised,
  leaving the dark modules sunk into the surface;
* hollow + ``through``: the raised layer spans the whole base thickness and
  no base is emitted, so dark modules become through-holes.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
from shapely.geometry import Polygon, box

from platecraft.contracts import QRParams
from platecraft.extrusion import extrude
from platecraft.mesh import MeshBuilder, TriangleMesh, box_triangles, merge_meshes
from platecraft.outlines import curve_segments, make_polygon, rounded_rect_points

logger = logging.getLogger(__name__)

BASE_MATERIAL = 0
CODE_MATERIAL = 1


def _plate_outline(plate_size: float, params: QRParams) -> Optional[Polygon]:
    half = plate_size / 2
    return make_polygon(rounded_rect_points(half, half, params.corner_radius, curve_segments(params.resolution)))


def _module_blocks(modules: np.ndarray, params: QRParams, z_start: float, layer: float) -> TriangleMesh:
    count = modules.shape[0]
    pitch = params.size / count
    half = params.size / 2
    ys, xs = np.nonzero(modules)
    if len(xs) == 0:
        return TriangleMesh.empty()
    # row 0 is the top of the code
    mins = np.column_stack([
        xs * pitch - half,
        (count - 1 - ys) * pitch - half,
        np.full(len(xs), z_start),
    ])
    sizes = np.tile([pitch, pitch, layer], (len(xs), 1))
    builder = MeshBuilder()
    builder.add_triangles(box_triangles(mins, sizes))
    return builder.build()


def build_qr_plate(matrix: Sequence[Sequence[bool]], params: QRParams) -> TriangleMesh:
    """Plate mesh with material groups [base 0, code 1], base at z = 0."""
    modules = np.asarray(matrix, dtype=bool)
    if modules.ndim != 2 or modules.size == 0 or params.size <= 0:
        return TriangleMesh.empty()
    if modules.shape[0] != modules.shape[1]:
        raise ValueError("QR matrix must be square, got %r" % (modules.shape,))

    padding = max(0.0, params.margin)
    plate_size = params.size + 2 * padding
    hollow_through = params.invert and params.through
    layer = params.base_thickness if hollow_through else params.depth
    z_start = 0.0 if hollow_through else params.base_thickness

    base = TriangleMesh.empty()
    if not hollow_through and params.base_thickness > 0:
        outline = _plate_outline(plate_size, params)
        base = extrude(outline, params.base_thickness).translated(dz=params.base_thickness / 2)

    raised = ~modules if params.invert else modules
    parts = [_module_blocks(raised, params, z_start, layer)]
    if params.invert and padding > 0.01:
        half = params.size / 2
        outline = _plate_outline(plate_size, params)
        if outline is not None:
            border = outline.difference(box(-half, -half, half, half))
            parts.append(extrude(border, layer).translated(dz=z_start + layer / 2))
    code = merge_meshes(parts, use_groups=False)

    logger.info("QR plate: %dx%d modules, %d triangles",
                modules.shape[0], modules.shape[1], base.triangle_count + code.triangle_count)
    return merge_meshes([base, code], material_indices=[BASE_MATERIAL, CODE_MATERIAL])
