#!/usr/bin/env python3
"""Build one plate-style object and report mesh diagnostics."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import matplotlib.image as mpimg
import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from platecraft import (
    ArrayKind,
    ArraySpec,
    BevelKind,
    EngineConfig,
    GlyphLibrary,
    HeightfieldParams,
    HoleSpec,
    PlateEngine,
    PlateParams,
    PlateShape,
    QRParams,
    ReliefStyle,
    TextItem,
    TextPathGlyphProvider,
    TriangleMesh,
    replicate,
)

logger = logging.getLogger("build_plate")

MODES = ("plate", "stencil", "text-relief", "image-relief", "qr")


def _hole(value: str) -> HoleSpec:
    try:
        x, y, r = (float(v) for v in value.split(","))
    except ValueError as exc:
        raise argparse.ArgumentTypeError("hole must be X,Y,RADIUS") from exc
    return HoleSpec(x=x, y=y, radius=r)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build a parametric plate mesh and log diagnostics")
    parser.add_argument("--mode", choices=MODES, default="plate")
    parser.add_argument("--shape", choices=[s.value for s in PlateShape], default="square")
    parser.add_argument("--size", type=float, default=40.0, help="Size for size-driven shapes (mm)")
    parser.add_argument("--width", type=float, default=80.0, help="Rectangle/tray width (mm)")
    parser.add_argument("--height", type=float, default=50.0, help="Rectangle/tray height (mm)")
    parser.add_argument("--thickness", type=float, default=2.0, help="Plate thickness (mm)")
    parser.add_argument("--corner-radius", type=float, default=0.0)
    parser.add_argument("--rotation", type=float, default=0.0, help="Plate rotation (degrees)")
    parser.add_argument("--hole", type=_hole, action="append", default=[], help="X,Y,RADIUS (repeatable)")
    parser.add_argument("--text", action="append", default=[], help="Text line (repeatable)")
    parser.add_argument("--text-size", type=float, default=12.0)
    parser.add_argument("--relief-height", type=float, default=5.0)
    parser.add_argument("--font", default=None, help="TTF/OTF path for text")
    parser.add_argument("--bevel", choices=["none", "round", "chamfer"], default="none")
    parser.add_argument("--bevel-size", type=float, default=2.0)
    parser.add_argument("--resolution", type=int, default=3, help="Model resolution 1-5")
    parser.add_argument("--tray-border-width", type=float, default=5.0)
    parser.add_argument("--tray-border-height", type=float, default=5.0)
    parser.add_argument("--image", default=None, help="Image for image-relief mode")
    parser.add_argument("--relief-style", choices=[s.value for s in ReliefStyle], default="voxel")
    parser.add_argument("--image-size", type=float, default=100.0)
    parser.add_argument("--image-thickness", type=float, default=5.0)
    parser.add_argument("--threshold", type=float, default=128.0)
    parser.add_argument("--invert", action="store_true")
    parser.add_argument("--smoothing", type=float, default=1.0)
    parser.add_argument("--grid", type=int, default=150, help="Heightfield resolution")
    parser.add_argument("--no-base", action="store_true", help="Image relief without base plate")
    parser.add_argument("--qr-matrix", default=None, help="Text file of 0/1 rows (qr mode)")
    parser.add_argument("--qr-size", type=float, default=50.0)
    parser.add_argument("--array", choices=[k.value for k in ArrayKind], default="none")
    parser.add_argument("--array-count", type=int, nargs=2, default=(3, 1), metavar=("X", "Y"))
    parser.add_argument("--array-spacing", type=float, nargs=2, default=(60.0, 60.0), metavar=("X", "Y"))
    parser.add_argument("--array-circular-count", type=int, default=6, help="Copies in a circular array")
    parser.add_argument("--array-radius", type=float, default=60.0, help="Circular array radius (mm)")
    parser.add_argument("--force-csg", action="store_true", help="Build trays with mesh booleans")
    parser.add_argument("--summary", default=None, help="Write diagnostics JSON here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logs")
    return parser


def _load_image(path: str) -> np.ndarray:
    pixels = mpimg.imread(path)
    if pixels.dtype.kind == "f":
        pixels = np.clip(pixels * 255.0, 0, 255).astype(np.uint8)
    return pixels


def _plate_params(args) -> PlateParams:
    text_items = tuple(
        TextItem(content=line, size=args.text_size, y=-i * args.text_size * 1.4,
                 font=args.font, relief_height=args.relief_height)
        for i, line in enumerate(args.text)
    )
    return PlateParams(
        shape=PlateShape(args.shape),
        size=args.size,
        width=args.width,
        height=args.height,
        thickness=args.thickness,
        corner_radius=args.corner_radius,
        rotation=args.rotation,
        holes=tuple(args.hole),
        text_items=text_items,
        bevel_enabled=args.bevel != "none",
        bevel_kind=BevelKind(args.bevel) if args.bevel != "none" else BevelKind.ROUND,
        bevel_size=args.bevel_size,
        resolution=args.resolution,
        tray_border_width=args.tray_border_width,
        tray_border_height=args.tray_border_height,
    )


def _build(engine: PlateEngine, args) -> TriangleMesh:
    params = _plate_params(args)
    if args.mode == "plate":
        return engine.plate(params)
    if args.mode == "stencil":
        return engine.stencil(params)
    if args.mode == "text-relief":
        return engine.text_relief(params)
    if args.mode == "image-relief":
        if not args.image:
            raise SystemExit("--image is required for image-relief mode")
        hf = HeightfieldParams(
            size=args.image_size,
            thickness=args.image_thickness,
            threshold=args.threshold,
            invert=args.invert,
            smoothing=args.smoothing,
            resolution=args.grid,
            style=ReliefStyle(args.relief_style),
        )
        return engine.image_relief(_load_image(args.image), hf, None if args.no_base else params)
    if not args.qr_matrix:
        raise SystemExit("--qr-matrix is required for qr mode")
    matrix = np.loadtxt(args.qr_matrix, dtype=int) != 0
    return engine.qr_plate(matrix, QRParams(size=args.qr_size, invert=args.invert,
                                            base_thickness=args.thickness,
                                            corner_radius=args.corner_radius,
                                            resolution=args.resolution))


def mesh_diagnostics(mesh: TriangleMesh) -> dict:
    payload = {
        "triangles": mesh.triangle_count,
        "vertices": mesh.vertex_count,
        "groups": [[g.start, g.count, g.material_index] for g in mesh.groups],
    }
    bounds = mesh.bounds
    if bounds is not None:
        payload["bounds_min"] = list(bounds.minimum)
        payload["bounds_max"] = list(bounds.maximum)
    if not mesh.is_empty:
        tm = mesh.to_trimesh()
        payload["watertight"] = bool(tm.is_watertight)
        payload["volume_mm3"] = float(tm.volume) if tm.is_watertight else None
    return payload


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    engine = PlateEngine(
        glyphs=GlyphLibrary(TextPathGlyphProvider(args.font)),
        config=EngineConfig(force_csg=args.force_csg),
    )
    started = time.perf_counter()
    mesh = _build(engine, args)
    if args.array != "none":
        mesh = replicate(mesh, ArraySpec(
            kind=ArrayKind(args.array),
            count_x=args.array_count[0],
            count_y=args.array_count[1],
            spacing_x=args.array_spacing[0],
            spacing_y=args.array_spacing[1],
            count=args.array_circular_count,
            radius=args.array_radius,
        ))
    elapsed = time.perf_counter() - started

    payload = mesh_diagnostics(mesh)
    payload["mode"] = args.mode
    payload["elapsed_s"] = round(elapsed, 3)
    logger.info("%s: %d triangles in %.2fs", args.mode, mesh.triangle_count, elapsed)
    if payload.get("watertight") is False:
        logger.warning("Mesh is not watertight")
    if args.summary:
        Path(args.summary).write_text(json.dumps(payload, indent=2))
        logger.info("Diagnostics written to %s", args.summary)
    else:
        print(json.dumps(payload, indent=2))
    return 0 if not mesh.is_empty else 1


if __name__ == "__main__":
    raise SystemExit(main())
