"""Tests for plate-local / shape-space conversions."""

import numpy as np
import pytest

from platecraft.coords import (
    rotate_2d,
    rotation_z,
    to_plate_local,
    to_shape_xy,
    translation,
    world_to_shape,
)


class TestCoords:

    def test_plate_local_subtracts_position(self):
        assert to_plate_local((12.0, -3.0), (10.0, 1.0)) == (2.0, -4.0)

    def test_shape_xy_flips_y(self):
        assert to_shape_xy((3.0, 4.0)) == (3.0, -4.0)

    def test_rotate_counter_clockwise(self):
        x, y = rotate_2d((1.0, 0.0), 90.0)
        assert x == pytest.approx(0.0, abs=1e-12)
        assert y == pytest.approx(1.0)

    def test_zero_rotation_is_identity(self):
        assert rotate_2d((2.5, -1.0), 0.0) == (2.5, -1.0)

    def test_world_to_shape_undoes_plate_rotation(self):
        # a point on the +x axis of a plate rotated 90 degrees sits at world (0, -10)
        # in the XZ parent frame (shape y = -z)
        x, y = world_to_shape((5.0, -10.0), (5.0, 0.0), 90.0)
        assert x == pytest.approx(10.0)
        assert y == pytest.approx(0.0, abs=1e-12)

    def test_matrices(self):
        point = np.array([1.0, 0.0, 0.0, 1.0])
        rotated = rotation_z(90.0) @ point
        np.testing.assert_allclose(rotated[:3], [0.0, 1.0, 0.0], atol=1e-12)
        moved = translation((1.0, 2.0, 3.0)) @ point
        np.testing.assert_allclose(moved[:3], [2.0, 2.0, 3.0])
