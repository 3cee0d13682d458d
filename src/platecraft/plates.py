"""
Plate engine: cache-wrapped orchestration of the geometry builders.

Planar fast path::

    outline -> hole/text cutters -> union -> single difference -> extrude

Trays go through the same planar route as two merged parts (floor and rim);
if that fails, or ``EngineConfig.force_csg`` is set, the tray is rebuilt as
one block with the cavity and cutters removed by mesh booleans. Whatever
goes wrong, a builder returns a valid (possibly uncut or empty) mesh.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
from typing import Callable, Hashable, List, Optional, Sequence

import numpy as np
from shapely.geometry.base import BaseGeometry

from platecraft import polygon_ops
from platecraft.contracts import (
    BevelKind,
    BevelSpec,
    EngineConfig,
    HeightfieldParams,
    PlateParams,
    PlateShape,
    QRParams,
)
from platecraft.coords import world_to_shape
from platecraft.csg import DifferenceFn, build_tray_solid, manifold_difference
from platecraft.errors import BooleanError
from platecraft.extrusion import extrude
from platecraft.glyphs import GlyphLibrary
from platecraft.heightfield import build_heightfield
from platecraft.lru import LRUCache
from platecraft.mesh import TriangleMesh, merge_meshes
from platecraft.outlines import build_outline, build_tray_outlines, circle_polygon
from platecraft.qr import build_qr_plate

logger = logging.getLogger(__name__)

# Fraction of the plate thickness a bevel may take from each face.
MAX_BEVEL_FRACTION = 0.45

PLATE_MATERIAL = 0
RELIEF_MATERIAL = 1


def image_digest(image: np.ndarray) -> Hashable:
    """Structural cache key component for a pixel buffer."""
    arr = np.ascontiguousarray(image)
    return (arr.shape, arr.dtype.str, hashlib.sha1(arr.tobytes()).hexdigest())


class PlateEngine:
    """Builds plate, stencil, relief, heightfield and QR meshes.

    Caches are owned by the instance; pass your own ``LRUCache`` objects to
    share or inspect them.
    """

    def __init__(
        self,
        glyphs: Optional[GlyphLibrary] = None,
        config: Optional[EngineConfig] = None,
        plate_cache: Optional[LRUCache] = None,
        heightfield_cache: Optional[LRUCache] = None,
        csg_difference: Optional[DifferenceFn] = None,
    ):
        self.config = config or EngineConfig()
        self.glyphs = glyphs or GlyphLibrary(cache_size=self.config.glyph_cache_size)
        self.plate_cache = plate_cache if plate_cache is not None else LRUCache(self.config.plate_cache_size)
        self.heightfield_cache = (
            heightfield_cache if heightfield_cache is not None
            else LRUCache(self.config.heightfield_cache_size)
        )
        self.csg_difference = csg_difference or functools.partial(
            manifold_difference, engine=self.config.csg_engine
        )

    # -- caching --------------------------------------------------------------

    def _cached(self, cache: LRUCache, key: Hashable, build: Callable[[], TriangleMesh]) -> TriangleMesh:
        mesh = cache.get(key)
        if mesh is not None:
            logger.debug("cache hit: %s", key[0])
            return mesh
        logger.debug("cache miss: %s", key[0])
        mesh = build()
        cache.set(key, mesh)
        return mesh

    @staticmethod
    def _plate_key(params: PlateParams, cut_text: bool) -> PlateParams:
        """Drop fields that cannot change the plate mesh."""
        relevant = params
        if not cut_text:
            relevant = dataclasses.replace(relevant, text_items=())
        if params.shape is not PlateShape.TRAY:
            relevant = dataclasses.replace(relevant, tray_border_width=0.0, tray_border_height=0.0)
        if not params.bevel_enabled:
            relevant = dataclasses.replace(relevant, bevel_kind=BevelKind.ROUND, bevel_size=0.0)
        return relevant

    # -- cutters ----------------------------------------------------------------

    def hole_cutters(self, params: PlateParams) -> List[BaseGeometry]:
        cutters = []
        for hole in params.holes:
            centre = world_to_shape((hole.x, hole.y), params.position, params.rotation)
            disc = circle_polygon(centre, hole.radius, params.resolution)
            if disc is not None:
                cutters.append(disc)
        return cutters

    def text_cutters(self, params: PlateParams) -> List[BaseGeometry]:
        cutters = []
        for item in params.text_items:
            cutter = self.glyphs.cutter(item, params.position, params.rotation)
            if cutter is not None:
                cutters.append(cutter)
        return cutters

    @staticmethod
    def bevel_for(params: PlateParams) -> Optional[BevelSpec]:
        if not params.bevel_enabled or params.bevel_size <= 0 or params.thickness <= 0:
            return None
        thickness = min(params.bevel_size, params.thickness * MAX_BEVEL_FRACTION)
        return BevelSpec.for_resolution(params.bevel_kind, params.bevel_size, thickness, params.resolution)

    # -- plates -----------------------------------------------------------------

    def plate(self, params: PlateParams, cut_text: bool = False) -> TriangleMesh:
        """Plate centred on z = 0 with holes (and optionally text) cut through."""
        key = ("plate", self._plate_key(params, cut_text), cut_text)
        return self._cached(self.plate_cache, key, lambda: self._build_plate(params, cut_text))

    def stencil(self, params: PlateParams) -> TriangleMesh:
        return self.plate(params, cut_text=True)

    def _build_plate(self, params: PlateParams, cut_text: bool) -> TriangleMesh:
        if params.thickness <= 0:
            logger.warning("Plate thickness %.3f is not positive; nothing to build", params.thickness)
            return TriangleMesh.empty()

        cutters = self.hole_cutters(params)
        if cut_text:
            cutters.extend(self.text_cutters(params))

        if params.shape is PlateShape.TRAY:
            return self._build_tray(params, cutters)

        outline = build_outline(params.shape_spec())
        if outline is None:
            logger.warning("Degenerate %s outline; nothing to build", params.shape.value)
            return TriangleMesh.empty()

        bevel = self.bevel_for(params)
        depth = params.thickness - 2 * bevel.thickness if bevel else params.thickness
        try:
            shape = polygon_ops.subtract_cutters(outline, cutters)
            mesh = extrude(shape, depth, bevel)
        except Exception as exc:
            logger.warning("Cutting %s plate failed, using the uncut outline: %s", params.shape.value, exc)
            mesh = extrude(outline, depth, bevel)
        logger.info("Built %s plate: %d cutters, %d triangles",
                    params.shape.value, len(cutters), mesh.triangle_count)
        return mesh

    def _build_tray(self, params: PlateParams, cutters: Sequence[BaseGeometry]) -> TriangleMesh:
        pair = build_tray_outlines(params.shape_spec(), params.tray_border_width)
        if pair is None:
            logger.warning("Degenerate tray dimensions; nothing to build")
            return TriangleMesh.empty()
        outer, inner = pair

        if not self.config.force_csg:
            try:
                mesh = self._planar_tray(params, outer, inner, cutters)
                if not mesh.is_empty:
                    return mesh
                logger.warning("Planar tray came out empty; falling back to mesh booleans")
            except Exception as exc:
                logger.warning("Planar tray failed, falling back to mesh booleans: %s", exc)

        mesh = build_tray_solid(
            outer,
            inner,
            cutters,
            params.thickness,
            params.tray_border_height,
            difference=self.csg_difference,
            overshoot=self.config.cutter_overshoot,
        )
        if mesh.is_empty:
            logger.warning("Mesh-boolean tray failed; returning the uncut floor")
            return extrude(outer, params.thickness)
        logger.info("Built tray via mesh booleans: %d triangles", mesh.triangle_count)
        return mesh.with_material(PLATE_MATERIAL)

    @staticmethod
    def _planar_tray(params: PlateParams, outer, inner, cutters) -> TriangleMesh:
        """Floor (group 0) plus rim standing on it (group 1)."""
        t = params.thickness
        h = params.tray_border_height
        floor = extrude(polygon_ops.subtract_cutters(outer, cutters), t)
        rim = TriangleMesh.empty()
        if h > 0:
            ring = polygon_ops.difference(outer, inner)
            ring = polygon_ops.subtract_cutters(ring, cutters)
            rim = extrude(ring, h).translated(dz=t / 2 + h / 2)
        if floor.is_empty:
            raise BooleanError("tray floor is empty")
        return merge_meshes([floor, rim])

    def text_relief(self, params: PlateParams) -> TriangleMesh:
        """Plate (group 0) with extruded lettering standing on top (group 1)."""
        key = ("text_relief", self._plate_key(params, cut_text=True))
        return self._cached(self.plate_cache, key, lambda: self._build_text_relief(params))

    def _build_text_relief(self, params: PlateParams) -> TriangleMesh:
        base = self.plate(params)
        top = params.thickness / 2
        letters = []
        for item in params.text_items:
            if item.relief_height <= 0:
                continue
            cutter = self.glyphs.cutter(item, params.position, params.rotation)
            if cutter is None:
                continue
            letters.append(extrude(cutter, item.relief_height).translated(dz=top + item.relief_height / 2))
        text = merge_meshes(letters, use_groups=False)
        return merge_meshes([base, text], material_indices=[PLATE_MATERIAL, RELIEF_MATERIAL])

    # -- raster and QR ------------------------------------------------------------

    def heightfield(self, image: np.ndarray, params: HeightfieldParams) -> TriangleMesh:
        """Relief mesh centred in the image's own frame (not rotated or offset)."""
        key = ("heightfield", image_digest(image), params)
        return self._cached(self.heightfield_cache, key, lambda: build_heightfield(image, params))

    def image_relief(
        self,
        image: np.ndarray,
        params: HeightfieldParams,
        plate: Optional[PlateParams] = None,
    ) -> TriangleMesh:
        """Relief placed on an optional base plate; groups [relief 0, base 1].

        The base stands on z = 0; the relief starts on its top face.
        """
        key = ("image_relief", image_digest(image), params, self._plate_key(plate, False) if plate else None)
        return self._cached(self.heightfield_cache, key, lambda: self._build_image_relief(image, params, plate))

    def _build_image_relief(self, image, params: HeightfieldParams, plate: Optional[PlateParams]) -> TriangleMesh:
        base = TriangleMesh.empty()
        lift = 0.0
        if plate is not None:
            base = self.plate(plate)
            if not base.is_empty:
                lift = plate.thickness
                base = base.translated(dz=plate.thickness / 2).rotated_z(plate.rotation)

        relief_params = dataclasses.replace(params, base_z=params.base_z + lift)
        relief = self.heightfield(image, relief_params)
        relief = relief.rotated_z(params.rotation).translated(params.offset[0], params.offset[1])
        if relief.is_empty:
            logger.info("Image has no cells above threshold %.1f; base only", params.threshold)
        return merge_meshes([relief, base])

    def qr_plate(self, matrix, params: QRParams) -> TriangleMesh:
        modules = np.asarray(matrix, dtype=bool)
        key = ("qr", image_digest(modules), params)
        return self._cached(self.plate_cache, key, lambda: build_qr_plate(modules, params))
