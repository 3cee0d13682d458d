"""
2D outline library: closed plate silhouettes as shapely polygons.

Outlines are authored in shape space (x right, y up) and centred on the
origin. Straight edges contribute their end points only; quadratic and
cubic Bezier segments are sampled with ``curve_segments(resolution)``
points and full ellipses with twice that many.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.polygon import orient

from platecraft.contracts import PlateShape, ShapeSpec, Vec2, clamp_resolution

logger = logging.getLogger(__name__)

BASE_CURVE_SEGMENTS = 32
CORNER_EPSILON = 0.01
MAX_ROUNDED_RADIUS = 15.0


def curve_segments(resolution: int) -> int:
    return BASE_CURVE_SEGMENTS * clamp_resolution(resolution)


class PathSampler:
    """Pen-style path that flattens straight and curved segments to points."""

    def __init__(self, divisions: int):
        self.divisions = max(1, int(divisions))
        self._points: List[Vec2] = []

    @property
    def current(self) -> Vec2:
        return self._points[-1]

    def move_to(self, x: float, y: float) -> "PathSampler":
        self._points = [(float(x), float(y))]
        return self

    def line_to(self, x: float, y: float) -> "PathSampler":
        self._points.append((float(x), float(y)))
        return self

    def quadratic_to(self, cx: float, cy: float, x: float, y: float) -> "PathSampler":
        x0, y0 = self.current
        for i in range(1, self.divisions + 1):
            t = i / self.divisions
            u = 1.0 - t
            self._points.append((
                u * u * x0 + 2 * u * t * cx + t * t * x,
                u * u * y0 + 2 * u * t * cy + t * t * y,
            ))
        return self

    def bezier_to(
        self, c1x: float, c1y: float, c2x: float, c2y: float, x: float, y: float,
    ) -> "PathSampler":
        x0, y0 = self.current
        for i in range(1, self.divisions + 1):
            t = i / self.divisions
            u = 1.0 - t
            a, b, c, d = u * u * u, 3 * u * u * t, 3 * u * t * t, t * t * t
            self._points.append((
                a * x0 + b * c1x + c * c2x + d * x,
                a * y0 + b * c1y + c * c2y + d * y,
            ))
        return self

    def points(self) -> List[Vec2]:
        """Sampled points with consecutive and closing duplicates removed."""
        return dedupe_ring(self._points)


def dedupe_ring(points: Sequence[Vec2], tol: float = 1e-9) -> List[Vec2]:
    out: List[Vec2] = []
    for p in points:
        if out and abs(p[0] - out[-1][0]) <= tol and abs(p[1] - out[-1][1]) <= tol:
            continue
        out.append((float(p[0]), float(p[1])))
    while len(out) > 1 and abs(out[0][0] - out[-1][0]) <= tol and abs(out[0][1] - out[-1][1]) <= tol:
        out.pop()
    return out


def ellipse_points(cx: float, cy: float, rx: float, ry: float, count: int) -> List[Vec2]:
    return [
        (cx + rx * math.cos(2 * math.pi * i / count), cy + ry * math.sin(2 * math.pi * i / count))
        for i in range(count)
    ]


def circle_points(cx: float, cy: float, radius: float, resolution: int) -> List[Vec2]:
    return ellipse_points(cx, cy, radius, radius, 2 * curve_segments(resolution))


def rounded_rect_points(half_w: float, half_h: float, radius: float, divisions: int) -> List[Vec2]:
    """Rectangle with half extents and quarter-round corners (radius clamped)."""
    r = max(0.0, min(radius, min(half_w, half_h) - CORNER_EPSILON))
    if r <= 0:
        return [(-half_w, -half_h), (half_w, -half_h), (half_w, half_h), (-half_w, half_h)]
    path = PathSampler(divisions).move_to(-half_w + r, -half_h)
    path.line_to(half_w - r, -half_h)
    path.quadratic_to(half_w, -half_h, half_w, -half_h + r)
    path.line_to(half_w, half_h - r)
    path.quadratic_to(half_w, half_h, half_w - r, half_h)
    path.line_to(-half_w + r, half_h)
    path.quadratic_to(-half_w, half_h, -half_w, half_h - r)
    path.line_to(-half_w, -half_h + r)
    path.quadratic_to(-half_w, -half_h, -half_w + r, -half_h)
    return path.points()


def star_points(count: int, outer: float, inner: float, phase: float) -> List[Vec2]:
    """Alternating outer/inner radii; ``count`` is the total vertex count."""
    pts = []
    for i in range(count):
        angle = i * 2 * math.pi / count + phase
        r = outer if i % 2 == 0 else inner
        pts.append((math.cos(angle) * r, math.sin(angle) * r))
    return pts


def regular_points(count: int, radius: float, phase: float) -> List[Vec2]:
    return star_points(count, radius, radius, phase)


def make_polygon(shell: Sequence[Vec2], holes: Sequence[Sequence[Vec2]] = ()) -> Optional[Polygon]:
    """Build a CCW polygon with CW holes, repairing self-touching input."""
    shell = dedupe_ring(shell)
    if len(shell) < 3:
        return None
    rings = [dedupe_ring(h) for h in holes]
    poly = Polygon(shell, [h for h in rings if len(h) >= 3])
    if not poly.is_valid:
        repaired = poly.buffer(0)
        if isinstance(repaired, MultiPolygon):
            repaired = max(repaired.geoms, key=lambda g: g.area)
        if not isinstance(repaired, Polygon):
            return None
        poly = repaired
    if poly.is_empty or poly.area <= 0:
        return None
    return orient(poly, sign=1.0)


# --- builders ---------------------------------------------------------------

def _square(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    half = spec.size / 2
    return make_polygon(rounded_rect_points(half, half, spec.corner_radius, segs))


def _rectangle(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    if spec.width <= 0 or spec.height <= 0:
        return None
    return make_polygon(rounded_rect_points(spec.width / 2, spec.height / 2, spec.corner_radius, segs))


def _rounded(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    half = spec.size / 2
    r = min(spec.size / 5, MAX_ROUNDED_RADIUS)
    return make_polygon(rounded_rect_points(half, half, r, segs))


def _circle(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    return make_polygon(ellipse_points(0, 0, spec.size / 2, spec.size / 2, 2 * segs))


def _oval(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    return make_polygon(ellipse_points(0, 0, spec.size / 2, spec.size / 3, 2 * segs))


def _hexagon(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    return make_polygon(regular_points(6, spec.size / 2, -math.pi / 6))


def _pentagon(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    return make_polygon(regular_points(5, spec.size / 2, -math.pi / 2))


def _diamond(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    half = spec.size / 2
    return make_polygon([(0, half), (half, 0), (0, -half), (-half, 0)])


def _star(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    return make_polygon(star_points(10, spec.size / 2, spec.size / 4, -math.pi / 2))


def _badge(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    return make_polygon(star_points(16, spec.size / 2, spec.size / 2.5, -math.pi / 2))


def _cross(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    arm = spec.size / 2
    w = spec.size / 4
    return make_polygon([
        (-w, arm), (w, arm), (w, w), (arm, w), (arm, -w), (w, -w),
        (w, -arm), (-w, -arm), (-w, -w), (-arm, -w), (-arm, w), (-w, w),
    ])


def _cloud(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    s = spec.size / 2
    p = PathSampler(segs).move_to(-s * 0.6, -s * 0.2)
    p.bezier_to(-s * 0.8, -s * 0.4, -s * 0.6, -s * 0.6, -s * 0.3, -s * 0.5)
    p.bezier_to(-s * 0.1, -s * 0.7, s * 0.2, -s * 0.6, s * 0.4, -s * 0.4)
    p.bezier_to(s * 0.7, -s * 0.5, s * 0.8, -s * 0.2, s * 0.7, 0)
    p.bezier_to(s * 0.9, s * 0.2, s * 0.7, s * 0.5, s * 0.4, s * 0.4)
    p.bezier_to(s * 0.2, s * 0.6, -s * 0.1, s * 0.5, -s * 0.3, s * 0.3)
    p.bezier_to(-s * 0.6, s * 0.5, -s * 0.8, s * 0.2, -s * 0.7, -s * 0.1)
    p.bezier_to(-s * 0.9, -s * 0.2, -s * 0.8, -s * 0.3, -s * 0.6, -s * 0.2)
    return make_polygon(p.points())


def _shield(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    s = spec.size / 2
    p = PathSampler(segs).move_to(0, -s * 0.9)
    p.bezier_to(s * 0.3, -s * 0.7, s * 0.6, -s * 0.4, s * 0.7, 0)
    p.bezier_to(s * 0.7, s * 0.4, s * 0.5, s * 0.7, 0, s * 0.9)
    p.bezier_to(-s * 0.5, s * 0.7, -s * 0.7, s * 0.4, -s * 0.7, 0)
    p.bezier_to(-s * 0.6, -s * 0.4, -s * 0.3, -s * 0.7, 0, -s * 0.9)
    return make_polygon(p.points())


def _wave(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    w = spec.size * 0.8
    h = spec.size * 0.5
    amp = spec.size * 0.08
    p = PathSampler(segs).move_to(-w / 2, -h / 2)
    p.line_to(w / 2, -h / 2)
    p.bezier_to(w / 2 + amp, -h / 4, w / 2 - amp, h / 4, w / 2, h / 2)
    p.line_to(-w / 2, h / 2)
    p.bezier_to(-w / 2 - amp, h / 4, -w / 2 + amp, -h / 4, -w / 2, -h / 2)
    return make_polygon(p.points())


def _heart(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    s = spec.size / 2
    p = PathSampler(segs).move_to(0, -s * 0.7)
    p.bezier_to(-s * 0.1, -s * 0.4, -s * 0.7, -s * 0.4, -s * 0.7, s * 0.1)
    p.bezier_to(-s * 0.7, s * 0.5, -s * 0.35, s * 0.7, 0, s * 0.4)
    p.bezier_to(s * 0.35, s * 0.7, s * 0.7, s * 0.5, s * 0.7, s * 0.1)
    p.bezier_to(s * 0.7, -s * 0.4, s * 0.1, -s * 0.4, 0, -s * 0.7)
    return make_polygon(p.points())


def _nameplate(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    w = spec.size * 0.8
    h = spec.size * 0.35
    r = h / 3
    hole = ellipse_points(-w + r * 1.5, 0, h / 4, h / 4, 2 * segs)
    return make_polygon(rounded_rect_points(w, h, r, segs), [hole])


def _keychain(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    main_r = spec.size / 2
    hole_r = main_r / 5
    hole = ellipse_points(0, main_r - hole_r * 1.5, hole_r, hole_r, 2 * segs)
    return make_polygon(ellipse_points(0, 0, main_r, main_r, 2 * segs), [hole])


def _tag(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    tw = spec.size * 0.4
    th = spec.size * 0.6
    tip = spec.size * 0.15
    tr = spec.size * 0.05
    p = PathSampler(segs).move_to(-tw + tr, -th)
    p.line_to(tw - tr, -th)
    p.quadratic_to(tw, -th, tw, -th + tr)
    p.line_to(tw, th - tip)
    p.line_to(0, th)
    p.line_to(-tw, th - tip)
    p.line_to(-tw, -th + tr)
    p.quadratic_to(-tw, -th, -tw + tr, -th)
    hole = ellipse_points(0, th - tip * 1.8, tip / 2, tip / 2, 2 * segs)
    return make_polygon(p.points(), [hole])


def _door_sign(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    dw = spec.size * 0.9
    dh = spec.size * 0.4
    dr = dh / 4
    hr = dh / 5
    holes = [
        ellipse_points(-dw + dr * 2, 0, hr, hr, 2 * segs),
        ellipse_points(dw - dr * 2, 0, hr, hr, 2 * segs),
    ]
    return make_polygon(rounded_rect_points(dw, dh, dr, segs), holes)


def _pet_bone(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    bw = spec.size * 0.6
    bh = spec.size * 0.25
    b = spec.size * 0.15
    p = PathSampler(segs).move_to(bw, -bh)
    p.bezier_to(bw + b, -bh - b, bw + b * 2, 0, bw + b, bh + b)
    p.bezier_to(bw + b * 0.5, bh + b * 0.5, bw, bh, bw, bh)
    p.line_to(-bw, bh)
    p.bezier_to(-bw, bh, -bw - b * 0.5, bh + b * 0.5, -bw - b, bh + b)
    p.bezier_to(-bw - b * 2, 0, -bw - b, -bh - b, -bw, -bh)
    p.line_to(bw, -bh)
    hole = ellipse_points(0, 0, bh / 2, bh / 2, 2 * segs)
    return make_polygon(p.points(), [hole])


def _trophy(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    ts = spec.size / 2
    p = PathSampler(segs).move_to(-ts * 0.6, -ts * 0.8)
    p.line_to(ts * 0.6, -ts * 0.8)
    p.line_to(ts * 0.5, ts * 0.3)
    p.bezier_to(ts * 0.5, ts * 0.6, ts * 0.3, ts * 0.8, 0, ts * 0.8)
    p.bezier_to(-ts * 0.3, ts * 0.8, -ts * 0.5, ts * 0.6, -ts * 0.5, ts * 0.3)
    p.line_to(-ts * 0.6, -ts * 0.8)
    return make_polygon(p.points())


def _frame(spec: ShapeSpec, segs: int) -> Optional[Polygon]:
    fw = spec.size * 0.6
    fh = spec.size * 0.5
    border = spec.size * 0.08
    inner = rounded_rect_points(fw - border, fh - border, 0, segs)
    return make_polygon(rounded_rect_points(fw, fh, 0, segs), [inner])


_BUILDERS: Dict[PlateShape, Optional[Callable[[ShapeSpec, int], Optional[Polygon]]]] = {
    PlateShape.SQUARE: _square,
    PlateShape.RECTANGLE: _rectangle,
    PlateShape.ROUNDED: _rounded,
    PlateShape.CIRCLE: _circle,
    PlateShape.OVAL: _oval,
    PlateShape.HEXAGON: _hexagon,
    PlateShape.PENTAGON: _pentagon,
    PlateShape.DIAMOND: _diamond,
    PlateShape.STAR: _star,
    PlateShape.CROSS: _cross,
    PlateShape.CLOUD: _cloud,
    PlateShape.SHIELD: _shield,
    PlateShape.BADGE: _badge,
    PlateShape.WAVE: _wave,
    PlateShape.HEART: _heart,
    PlateShape.NAMEPLATE: _nameplate,
    PlateShape.KEYCHAIN: _keychain,
    PlateShape.TAG: _tag,
    PlateShape.COASTER: _circle,
    PlateShape.DOOR_SIGN: _door_sign,
    PlateShape.PET_BONE: _pet_bone,
    PlateShape.TROPHY: _trophy,
    PlateShape.FRAME: _frame,
    PlateShape.TRAY: None,
}


def build_outline(spec: ShapeSpec) -> Optional[Polygon]:
    """Outline polygon for *spec*, or None for trays and degenerate input."""
    builder = _BUILDERS[spec.kind]
    if builder is None:
        return None
    if spec.kind is not PlateShape.RECTANGLE and spec.size <= 0:
        return None
    return builder(spec, curve_segments(spec.resolution))


def build_tray_outlines(spec: ShapeSpec, border_width: float) -> Optional[Tuple[Polygon, Polygon]]:
    """Outer rounded rectangle and inner cavity of a tray.

    The border is capped at a quarter of the smaller outer side. Returns
    None when either outline would be degenerate.
    """
    if spec.width <= 0 or spec.height <= 0:
        return None
    segs = curve_segments(spec.resolution)
    border = max(0.0, min(border_width, min(spec.width, spec.height) / 4))
    inner_w = spec.width - 2 * border
    inner_h = spec.height - 2 * border
    if inner_w <= 0 or inner_h <= 0:
        logger.debug("tray cavity collapsed (%.3f x %.3f)", inner_w, inner_h)
        return None
    outer = make_polygon(rounded_rect_points(spec.width / 2, spec.height / 2, spec.corner_radius, segs))
    inner = make_polygon(rounded_rect_points(inner_w / 2, inner_h / 2, 0.0, segs))
    if outer is None or inner is None:
        return None
    return outer, inner


def circle_polygon(center: Vec2, radius: float, resolution: int = 3) -> Optional[Polygon]:
    """Sampled disc used for hole cutters."""
    if radius <= 0:
        return None
    return make_polygon(circle_points(center[0], center[1], radius, resolution))
