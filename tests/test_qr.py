"""Tests for QR module plates."""

import numpy as np
import pytest

from platecraft.contracts import QRParams
from platecraft.qr import build_qr_plate


@pytest.fixture
def diagonal():
    return np.eye(3, dtype=bool)


def _group_volumes(mesh):
    volumes = {}
    for group in mesh.groups:
        faces = mesh.indices[group.start:group.start + group.count]
        tris = mesh.positions[faces]
        signed = np.einsum("ij,ij->i", tris[:, 0], np.cross(tris[:, 1], tris[:, 2])) / 6.0
        volumes[group.material_index] = float(signed.sum())
    return volumes


class TestQRPlate:

    def test_dark_modules_raised(self, diagonal):
        mesh = build_qr_plate(diagonal, QRParams(size=30.0, margin=1.0, depth=2.0, base_thickness=2.0))
        volumes = _group_volumes(mesh)
        assert volumes[0] == pytest.approx(32.0 * 32.0 * 2.0)
        assert volumes[1] == pytest.approx(3 * 10.0 * 10.0 * 2.0)
        assert mesh.bounds.minimum[2] == pytest.approx(0.0)
        assert mesh.bounds.maximum[2] == pytest.approx(4.0)

    def test_top_row_is_top_of_plate(self):
        matrix = np.zeros((3, 3), dtype=bool)
        matrix[0, 0] = True
        mesh = build_qr_plate(matrix, QRParams(size=30.0))
        code = mesh.groups[1]
        faces = mesh.indices[code.start:code.start + code.count]
        pts = mesh.positions[np.unique(faces)]
        assert pts[:, 0].min() == pytest.approx(-15.0)
        assert pts[:, 1].max() == pytest.approx(15.0)

    def test_hollow_raises_light_modules_and_border(self, diagonal):
        params = QRParams(size=30.0, margin=1.0, depth=2.0, base_thickness=2.0, invert=True)
        volumes = _group_volumes(build_qr_plate(diagonal, params))
        border = 32.0 * 32.0 - 30.0 * 30.0
        assert volumes[1] == pytest.approx((6 * 100.0 + border) * 2.0)

    def test_hollow_through_has_no_base(self, diagonal):
        params = QRParams(size=30.0, margin=1.0, base_thickness=3.0, invert=True, through=True)
        mesh = build_qr_plate(diagonal, params)
        assert [g.material_index for g in mesh.groups] == [1]
        assert mesh.bounds.minimum[2] == pytest.approx(0.0)
        assert mesh.bounds.maximum[2] == pytest.approx(3.0)

    def test_no_border_without_margin(self, diagonal):
        params = QRParams(size=30.0, margin=0.0, depth=2.0, invert=True)
        volumes = _group_volumes(build_qr_plate(diagonal, params))
        assert volumes[1] == pytest.approx(6 * 100.0 * 2.0)

    def test_non_square_matrix_rejected(self):
        with pytest.raises(ValueError):
            build_qr_plate(np.zeros((2, 3), dtype=bool), QRParams())

    def test_empty_matrix(self):
        assert build_qr_plate(np.zeros((0, 0), dtype=bool), QRParams()).is_empty
