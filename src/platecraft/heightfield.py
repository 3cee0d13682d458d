"""
Raster image -> relief mesh.

The image is resampled onto an R x R grid of cell values in 0..255 where a
larger value means a taller column (dark ink by default). Cells whose value
is below the threshold are inactive and emit nothing. Two meshing styles
share that active set:

``smooth``
    Displaced surface: two top triangles per cell, a flat bottom, and a wall
    on every side facing an inactive or out-of-range neighbour, so the
    result is closed. A corner takes the mean height of the active cells
    around it, so blank pixels never pull a column down. Cells that touch
    only diagonally keep separate corners.
``voxel``
    One independent box per active cell.

Rows run from the top of the image (+y) to the bottom (-y); the grid is
centred on the origin with width ``size`` and depth ``size / aspect``.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
from scipy import ndimage

from platecraft.contracts import MAX_HEIGHTFIELD_RESOLUTION, HeightfieldParams, ReliefStyle
from platecraft.errors import DegenerateGeometryError
from platecraft.mesh import MeshBuilder, TriangleMesh, box_triangles

logger = logging.getLogger(__name__)

# Fraction of a cell that separates two cells meeting only at a corner.
DIAGONAL_GAP = 1e-4


def grid_resolution(params: HeightfieldParams) -> int:
    return max(1, min(int(params.resolution), MAX_HEIGHTFIELD_RESOLUTION))


def to_grayscale(image: np.ndarray, invert: bool = False) -> np.ndarray:
    """Gray levels (0..255 float) of a gray, RGB or RGBA uint8 array.

    Transparent pixels are composited over white, or black when inverted.
    """
    arr = np.asarray(image, dtype=float)
    if arr.ndim == 2:
        return arr
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError("expected an (H, W), (H, W, 3) or (H, W, 4) image, got %r" % (arr.shape,))
    rgb = arr[..., :3]
    if arr.shape[2] == 4:
        alpha = arr[..., 3:4] / 255.0
        background = 0.0 if invert else 255.0
        rgb = rgb * alpha + background * (1.0 - alpha)
    return rgb.mean(axis=2)


def prepare_heightmap(image: np.ndarray, params: HeightfieldParams) -> np.ndarray:
    """R x R cell values in 0..255 ready for thresholding."""
    gray = to_grayscale(image, params.invert)
    if gray.size == 0:
        raise DegenerateGeometryError("image has no pixels")
    r = grid_resolution(params)
    if gray.shape != (r, r):
        gray = ndimage.zoom(gray, (r / gray.shape[0], r / gray.shape[1]), order=1, mode="nearest")
        gray = gray[:r, :r]
    if params.smoothing > 0:
        gray = ndimage.gaussian_filter(gray, sigma=params.smoothing * 0.5, mode="nearest")
    values = gray if params.invert else 255.0 - gray
    return np.clip(values, 0.0, 255.0)


def cell_heights(values: np.ndarray, params: HeightfieldParams) -> np.ndarray:
    return values / 255.0 * params.thickness


def active_cells(values: np.ndarray, params: HeightfieldParams) -> np.ndarray:
    """Cells that emit geometry; identical for both styles."""
    return (values >= params.threshold) & (cell_heights(values, params) > 0)


def physical_extent(image_shape: Tuple[int, ...], size: float) -> Tuple[float, float]:
    """(width, depth) in mm keeping the source image aspect ratio."""
    h, w = image_shape[0], image_shape[1]
    aspect = w / h if h else 1.0
    return float(size), float(size) / aspect


def mesh_from_values(
    values: np.ndarray,
    params: HeightfieldParams,
    width: float,
    depth: float,
) -> TriangleMesh:
    """Relief mesh for an already-prepared grid of cell values."""
    values = np.asarray(values, dtype=float)
    active = active_cells(values, params)
    if not active.any():
        return TriangleMesh.empty()

    rows, cols = values.shape
    step_x = width / cols
    step_y = depth / rows
    if params.style is ReliefStyle.SMOOTH:
        builder = _smooth(values, active, params, step_x, step_y, width, depth)
    else:
        builder = _voxel(values, active, params, step_x, step_y, width, depth)
    mesh = builder.build()
    logger.debug("heightfield %s: %d active cells -> %d triangles",
                 params.style.value, int(active.sum()), mesh.triangle_count)
    return mesh


def build_heightfield(image: np.ndarray, params: HeightfieldParams) -> TriangleMesh:
    try:
        values = prepare_heightmap(image, params)
    except DegenerateGeometryError as exc:
        logger.warning("No relief built: %s", exc)
        return TriangleMesh.empty()
    width, depth = physical_extent(np.asarray(image).shape, params.size)
    return mesh_from_values(values, params, width, depth)


def _planar_uvs(points: np.ndarray, width: float, depth: float) -> np.ndarray:
    pts = points.reshape(-1, 3)
    u = (pts[:, 0] + width / 2) / width
    v = (pts[:, 1] + depth / 2) / depth
    return np.column_stack([u, v])


def corner_heights(heights: np.ndarray, active: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Heights on the (R + 1) x (C + 1) corner grid, averaged over active cells.

    Also returns the corners touched by exactly two diagonally opposite
    active cells; those cells share no edge, so each keeps its own corner.
    """
    a = np.pad(active, 1, constant_values=False)
    h = np.pad(np.where(active, heights, 0.0), 1)
    nw, ne, sw, se = a[:-1, :-1], a[:-1, 1:], a[1:, :-1], a[1:, 1:]
    count = nw.astype(int) + ne + sw + se
    total = h[:-1, :-1] + h[:-1, 1:] + h[1:, :-1] + h[1:, 1:]
    shared = total / np.maximum(count, 1)
    diagonal = (count == 2) & ((nw & se) | (ne & sw))
    return shared, diagonal


def _smooth(values, active, params, step_x, step_y, width, depth) -> MeshBuilder:
    heights = cell_heights(values, params)
    shared, diagonal = corner_heights(heights, active)
    ys, xs = np.nonzero(active)
    zb = float(params.base_z)
    base = np.full(len(xs), zb)
    gap_x = step_x * DIAGONAL_GAP
    gap_y = step_y * DIAGONAL_GAP

    def corner(dy, dx, sx, sy):
        cy, cx = ys + dy, xs + dx
        split = diagonal[cy, cx]
        x = -width / 2 + cx * step_x + np.where(split, sx * gap_x, 0.0)
        y = depth / 2 - cy * step_y + np.where(split, sy * gap_y, 0.0)
        z = zb + np.where(split, heights[ys, xs], shared[cy, cx])
        return np.column_stack([x, y, z]), np.column_stack([x, y, base])

    # split corners are pulled into their own cell
    tl, btl = corner(0, 0, 1, -1)
    tr, btr = corner(0, 1, -1, -1)
    bl, bbl = corner(1, 0, 1, 1)
    br, bbr = corner(1, 1, -1, 1)

    builder = MeshBuilder()
    top = np.concatenate([np.stack([tl, bl, tr], axis=1), np.stack([bl, br, tr], axis=1)])
    bottom = np.concatenate([np.stack([btl, btr, bbl], axis=1), np.stack([bbl, btr, bbr], axis=1)])
    builder.add_triangles(top, _planar_uvs(top, width, depth))
    builder.add_triangles(bottom, _planar_uvs(bottom, width, depth))

    padded = np.pad(active, 1, constant_values=False)
    open_north = ~padded[ys, xs + 1]
    open_south = ~padded[ys + 2, xs + 1]
    open_west = ~padded[ys + 1, xs]
    open_east = ~padded[ys + 1, xs + 2]

    walls = [
        np.stack([btl, tl, tr, btr], axis=1)[open_north],
        np.stack([bbl, bbr, br, bl], axis=1)[open_south],
        np.stack([bbl, bl, tl, btl], axis=1)[open_west],
        np.stack([bbr, btr, tr, br], axis=1)[open_east],
    ]
    quads = np.concatenate(walls)
    builder.add_quads(quads, _planar_uvs(quads, width, depth))
    return builder


def _voxel(values, active, params, step_x, step_y, width, depth) -> MeshBuilder:
    heights = cell_heights(values, params)
    ys, xs = np.nonzero(active)
    mins = np.column_stack([
        -width / 2 + xs * step_x,
        depth / 2 - (ys + 1) * step_y,
        np.full(len(xs), float(params.base_z)),
    ])
    sizes = np.column_stack([
        np.full(len(xs), step_x),
        np.full(len(xs), step_y),
        heights[ys, xs],
    ])
    tris = box_triangles(mins, sizes)
    builder = MeshBuilder()
    builder.add_triangles(tris, _planar_uvs(tris, width, depth))
    return builder
