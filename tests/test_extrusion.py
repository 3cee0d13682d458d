"""Tests for polygon extrusion and bevel profiles."""

import numpy as np
import pytest
from shapely.geometry import MultiPolygon, Polygon, box

from platecraft.contracts import BevelKind, BevelSpec
from platecraft.extrusion import _split_skipped_vertices, bevel_layers, bevel_profile, extrude, offset_ring
from platecraft.outlines import circle_polygon


@pytest.fixture
def square_with_hole():
    hole = circle_polygon((0.0, 0.0), 2.0)
    return Polygon(box(-5, -5, 5, 5).exterior.coords, [hole.exterior.coords])


class TestBevelProfile:

    def test_plain_profile(self):
        assert bevel_profile(3.0) == [(0.0, 0.0), (0.0, 3.0)]

    def test_chamfer_profile(self):
        profile = bevel_profile(2.0, BevelSpec(thickness=0.5, size=1.0))
        assert profile == [(1.0, 0.0), (0.0, 0.5), (0.0, 2.5), (1.0, 3.0)]

    def test_round_profile_is_monotonic(self):
        bevel = BevelSpec.for_resolution(BevelKind.ROUND, 1.0, 0.5, 3)
        assert bevel.segments == 6
        zs = [z for _, z in bevel_profile(2.0, bevel)]
        assert zs == sorted(zs)
        assert zs[0] == 0.0 and zs[-1] == pytest.approx(3.0)

    def test_chamfer_uses_single_segment(self):
        assert BevelSpec.for_resolution(BevelKind.CHAMFER, 1.0, 0.5, 5).segments == 1


class TestOffsetRing:

    def test_square_inset(self):
        ring = np.array([[-1, -1], [1, -1], [1, 1], [-1, 1]], dtype=float)
        np.testing.assert_allclose(offset_ring(ring, 0.25), ring * 0.75)

    def test_zero_inset_copies(self):
        ring = np.array([[0, 0], [1, 0], [0, 1]], dtype=float)
        out = offset_ring(ring, 0.0)
        assert out is not ring
        np.testing.assert_array_equal(out, ring)


@pytest.fixture
def narrow_frame():
    """20 mm square frame with a 3.2 mm border."""
    outer = np.array([[-10, -10], [10, -10], [10, 10], [-10, 10]], dtype=float)
    inner = np.array([[-6.8, -6.8], [-6.8, 6.8], [6.8, 6.8], [6.8, -6.8]], dtype=float)
    return [outer, inner]


class TestBevelLayers:

    def test_wide_border_keeps_full_inset(self, narrow_frame):
        layers, scale = bevel_layers(narrow_frame, [1.0, 0.0, 0.0, 1.0])
        assert scale == 1.0
        np.testing.assert_allclose(layers[0][0], narrow_frame[0] * 0.9)

    def test_inset_wider_than_half_the_border_is_narrowed(self, narrow_frame):
        layers, scale = bevel_layers(narrow_frame, [2.0, 0.0, 0.0, 2.0])
        assert scale == 0.5
        assert Polygon(layers[0][0], layers[0][1:]).is_valid
        assert np.abs(layers[0][0]).max() == pytest.approx(9.0)
        assert np.abs(layers[0][1]).max() == pytest.approx(7.8)

    def test_hopeless_inset_falls_back_to_straight_walls(self):
        strip = [np.array([[0, 0], [10, 0], [10, 0.2], [0, 0.2]], dtype=float)]
        layers, scale = bevel_layers(strip, [2.0, 0.0, 0.0, 2.0])
        assert scale == 0.0
        for layer in layers:
            np.testing.assert_array_equal(layer[0], strip[0])


class TestCapSplitting:

    def test_skipped_ring_vertex_splits_triangle(self):
        verts = np.array([[0, 0], [2, 0], [2, 1], [0, 1], [1, 0]], dtype=float)
        faces = np.array([[0, 1, 2], [0, 2, 3]])
        ring = np.array([[0, 0], [1, 0], [2, 0], [2, 1], [0, 1]], dtype=float)
        out_verts, out_faces = _split_skipped_vertices(verts, faces, [ring])
        assert len(out_faces) == 3
        edges = {
            tuple(sorted((tuple(out_verts[f[k]]), tuple(out_verts[f[(k + 1) % 3]]))))
            for f in out_faces for k in range(3)
        }
        assert ((0.0, 0.0), (1.0, 0.0)) in edges
        assert ((1.0, 0.0), (2.0, 0.0)) in edges
        assert ((0.0, 0.0), (2.0, 0.0)) not in edges
        tri = out_verts[out_faces]
        u, v = tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0]
        area = 0.5 * np.abs(u[:, 0] * v[:, 1] - u[:, 1] * v[:, 0]).sum()
        assert area == pytest.approx(2.0)

    def test_matching_triangulation_is_unchanged(self):
        verts = np.array([[0, 0], [2, 0], [2, 1], [0, 1]], dtype=float)
        faces = np.array([[0, 1, 2], [0, 2, 3]])
        _, out_faces = _split_skipped_vertices(verts, faces, [verts])
        assert len(out_faces) == 2


class TestExtrude:

    def test_box_is_closed_and_centred(self):
        mesh = extrude(box(-5, -5, 5, 5), 2.0)
        tm = mesh.to_trimesh()
        assert tm.is_watertight
        assert tm.volume == pytest.approx(200.0)
        assert mesh.bounds.minimum[2] == pytest.approx(-1.0)
        assert mesh.bounds.maximum[2] == pytest.approx(1.0)

    def test_hole_removes_material(self, square_with_hole):
        tm = extrude(square_with_hole, 2.0).to_trimesh()
        assert tm.is_watertight
        assert tm.volume == pytest.approx(square_with_hole.area * 2.0, rel=1e-6)

    def test_clockwise_input_still_has_positive_volume(self):
        cw = Polygon([(0, 0), (0, 4), (4, 4), (4, 0)])
        assert extrude(cw, 1.0).to_trimesh().volume == pytest.approx(16.0)

    def test_multipolygon_extrudes_every_part(self):
        shape = MultiPolygon([box(0, 0, 1, 1), box(3, 0, 4, 1)])
        tm = extrude(shape, 1.0).to_trimesh()
        assert tm.volume == pytest.approx(2.0)

    def test_chamfer_bevel_height_and_top_inset(self):
        bevel = BevelSpec(thickness=0.5, size=1.0)
        mesh = extrude(box(-10, -10, 10, 10), 2.0, bevel=bevel)
        assert mesh.bounds.size[2] == pytest.approx(3.0)
        top = mesh.positions[np.isclose(mesh.positions[:, 2], 1.5)]
        assert np.abs(top[:, :2]).max() == pytest.approx(9.0)
        assert mesh.to_trimesh().is_watertight

    def test_round_bevel_is_closed(self):
        bevel = BevelSpec.for_resolution(BevelKind.ROUND, 1.0, 0.5, 2)
        tm = extrude(box(-10, -10, 10, 10), 2.0, bevel=bevel).to_trimesh()
        assert tm.is_watertight
        assert 400.0 * 2.0 < tm.volume < 400.0 * 3.0

    def test_single_material_group(self):
        mesh = extrude(box(0, 0, 1, 1), 1.0, material_index=4)
        assert len(mesh.groups) == 1
        assert mesh.groups[0].material_index == 4
        assert mesh.groups[0].count == mesh.triangle_count

    def test_degenerate_input_is_empty(self):
        assert extrude(None, 2.0).is_empty
        assert extrude(Polygon(), 2.0).is_empty
        assert extrude(box(0, 0, 1, 1), 0.0).is_empty

    def test_oversized_bevel_is_narrowed_and_closed(self, caplog):
        frame = box(-10, -10, 10, 10).difference(box(-6.8, -6.8, 6.8, 6.8))
        bevel = BevelSpec(kind=BevelKind.CHAMFER, thickness=0.5, size=2.0)
        with caplog.at_level("WARNING"):
            mesh = extrude(frame, 2.0, bevel=bevel)
        assert "Bevel narrowed to 1.00 mm" in caplog.text
        tm = mesh.to_trimesh()
        assert tm.is_watertight
        assert mesh.bounds.size[2] == pytest.approx(3.0)

    def test_bevel_on_thin_strip_keeps_height(self, caplog):
        bevel = BevelSpec(kind=BevelKind.ROUND, thickness=0.5, size=2.0, segments=4)
        with caplog.at_level("WARNING"):
            tm = extrude(box(0, 0, 10, 0.2), 2.0, bevel=bevel).to_trimesh()
        assert "straight walls" in caplog.text
        assert tm.is_watertight
        assert tm.volume == pytest.approx(10 * 0.2 * 3.0)
