"""Plate-local, shape-space and rotation conversions.

The plate lies in the world XZ plane; its outline is authored in a 2D
"shape" frame whose Y axis is the negated world Z, so converting a
plate-local point to shape space flips Y.
"""

import math
from typing import Tuple

import numpy as np

from platecraft.contracts import Vec2


def to_plate_local(world: Vec2, plate_position: Vec2) -> Vec2:
    """World (x, z) -> coordinates relative to the plate centre."""
    return (float(world[0]) - float(plate_position[0]), float(world[1]) - float(plate_position[1]))


def to_shape_xy(local: Vec2) -> Vec2:
    """Plate-local (x, z) -> shape-space (x, y)."""
    return (float(local[0]), -float(local[1]))


def rotate_2d(point: Vec2, degrees: float) -> Vec2:
    """Rotate *point* counter-clockwise about the origin."""
    if not degrees:
        return (float(point[0]), float(point[1]))
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    x, y = float(point[0]), float(point[1])
    return (x * c - y * s, x * s + y * c)


def world_to_shape(world: Vec2, plate_position: Vec2, plate_rotation: float) -> Vec2:
    """World point -> un-rotated shape space of a placed, rotated plate."""
    local = to_plate_local(world, plate_position)
    return rotate_2d(to_shape_xy(local), -plate_rotation)


def rotation_z(degrees: float) -> np.ndarray:
    """4x4 homogeneous rotation about +Z."""
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return np.array(
        [
            [c, -s, 0.0, 0.0],
            [s, c, 0.0, 0.0],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ]
    )


def translation(offset: Tuple[float, float, float]) -> np.ndarray:
    """4x4 homogeneous translation."""
    mat = np.eye(4)
    mat[:3, 3] = np.asarray(offset, dtype=float)
    return mat
