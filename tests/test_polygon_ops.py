"""Tests for planar polygon booleans."""

import math

import pytest
from shapely.geometry import MultiPolygon, Polygon, box

from platecraft import polygon_ops
from platecraft.errors import BooleanError
from platecraft.outlines import circle_polygon
from platecraft.polygon_ops import (
    difference,
    normalize_winding,
    signed_area,
    subtract_cutters,
    to_multipolygon,
    union,
    union_all,
)


class TestWinding:

    def test_signed_area_sign(self):
        ccw = [(0, 0), (1, 0), (1, 1), (0, 1)]
        assert signed_area(ccw) == pytest.approx(1.0)
        assert signed_area(list(reversed(ccw))) == pytest.approx(-1.0)

    def test_clockwise_input_is_normalized(self):
        cw = Polygon([(0, 0), (0, 1), (1, 1), (1, 0)])
        result = normalize_winding(cw)
        assert isinstance(result, MultiPolygon)
        assert signed_area(result.geoms[0].exterior) > 0

    def test_bowtie_is_repaired(self):
        bowtie = Polygon([(0, 0), (2, 2), (2, 0), (0, 2)])
        result = normalize_winding(bowtie)
        assert result.is_valid
        assert result.area == pytest.approx(2.0)

    def test_empty_input(self):
        assert normalize_winding(None).is_empty
        assert normalize_winding(Polygon()).is_empty

    def test_to_multipolygon_wraps_single_polygon(self):
        result = to_multipolygon(box(0, 0, 2, 1))
        assert isinstance(result, MultiPolygon)
        assert len(result.geoms) == 1


class TestBooleans:

    def test_difference_leaves_hole(self):
        result = difference(box(-40, -25, 40, 25), circle_polygon((0.0, 0.0), 5.0))
        poly = result.geoms[0]
        assert len(poly.interiors) == 1
        assert signed_area(poly.interiors[0]) < 0
        assert result.area == pytest.approx(4000.0 - math.pi * 25.0, rel=0.01)

    def test_union_merges_overlap(self):
        result = union(box(0, 0, 2, 1), box(1, 0, 3, 1))
        assert len(result.geoms) == 1
        assert result.area == pytest.approx(3.0)

    def test_boolean_failure_is_wrapped(self, monkeypatch):
        def boom(self, other):
            raise ValueError("bad topology")

        monkeypatch.setattr(MultiPolygon, "difference", boom)
        with pytest.raises(BooleanError):
            difference(box(0, 0, 1, 1), box(0, 0, 0.5, 0.5))


class TestSubtractCutters:

    def test_no_cutters_returns_base_untouched(self, monkeypatch):
        def fail(_):
            raise AssertionError("boolean engine should not run")

        monkeypatch.setattr(polygon_ops, "union_all", fail)
        base = box(0, 0, 10, 10)
        assert subtract_cutters(base, []) is base
        assert subtract_cutters(base, [None, Polygon()]) is base

    def test_cutters_outside_base_are_absorbed(self):
        base = box(0, 0, 10, 10)
        result = subtract_cutters(base, [box(20, 20, 25, 25)])
        assert result.area == pytest.approx(100.0)

    def test_overlapping_cutters_remove_union(self):
        base = box(0, 0, 10, 10)
        result = subtract_cutters(base, [box(0, 0, 4, 4), box(2, 2, 6, 6)])
        assert result.area == pytest.approx(100.0 - 28.0)

    def test_union_all_drops_failing_cutter(self, monkeypatch, caplog):
        good_a = box(0, 0, 1, 1)
        bad = box(5, 5, 6, 6)
        good_b = box(2, 0, 3, 1)

        def broken_unary_union(parts):
            raise ValueError("batched union failed")

        real_union = polygon_ops.union

        def picky_union(a, b):
            if b is bad:
                raise BooleanError("cannot union")
            return real_union(a, b)

        monkeypatch.setattr(polygon_ops, "unary_union", broken_unary_union)
        monkeypatch.setattr(polygon_ops, "union", picky_union)
        with caplog.at_level("WARNING"):
            result = union_all([good_a, bad, good_b])
        assert result.area == pytest.approx(2.0)
        assert "Dropping cutter 1" in caplog.text
