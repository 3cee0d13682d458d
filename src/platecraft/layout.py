"""Array layouts: replicate one finished mesh on a grid or a circle."""

from __future__ import annotations

import logging
import math

from platecraft.contracts import ArrayKind, ArraySpec
from platecraft.mesh import TriangleMesh, merge_meshes

logger = logging.getLogger(__name__)


def replicate(mesh: TriangleMesh, spec: ArraySpec) -> TriangleMesh:
    """Copies of *mesh* laid out per *spec*; material groups are kept.

    Rectangular arrays are centred on the origin. Circular copies sit at
    ``radius`` and are rotated by their angle about +Z.
    """
    if spec.kind is ArrayKind.NONE or mesh.is_empty:
        return mesh

    copies = []
    if spec.kind is ArrayKind.RECTANGULAR:
        if spec.count_x < 1 or spec.count_y < 1:
            return TriangleMesh.empty()
        off_x = (spec.count_x - 1) * spec.spacing_x / 2
        off_y = (spec.count_y - 1) * spec.spacing_y / 2
        for ix in range(spec.count_x):
            for iy in range(spec.count_y):
                copies.append(mesh.translated(ix * spec.spacing_x - off_x, iy * spec.spacing_y - off_y))
    else:
        if spec.count < 1:
            return TriangleMesh.empty()
        for i in range(spec.count):
            angle = 360.0 * i / spec.count
            rad = math.radians(angle)
            copies.append(
                mesh.rotated_z(angle).translated(spec.radius * math.cos(rad), spec.radius * math.sin(rad))
            )

    logger.debug("array %s: %d copies", spec.kind.value, len(copies))
    return merge_meshes(copies, use_groups=False)
