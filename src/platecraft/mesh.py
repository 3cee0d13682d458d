"""
Immutable triangle-mesh buffers and the accumulator that builds them.

Builders push chunks of triangles into a MeshBuilder and hand out the
finished TriangleMesh, whose arrays are read-only copies. Cached meshes may
be shared by several consumers, so nothing returned from here can be
mutated in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import trimesh

from platecraft.coords import rotation_z, translation


@dataclass(frozen=True)
class MaterialGroup:
    """Contiguous triangle range rendered with one material slot."""

    start: int            # first triangle
    count: int            # number of triangles
    material_index: int


@dataclass(frozen=True)
class Bounds:
    minimum: Tuple[float, float, float]
    maximum: Tuple[float, float, float]

    @property
    def size(self) -> Tuple[float, float, float]:
        return tuple(float(b - a) for a, b in zip(self.minimum, self.maximum))

    @property
    def center(self) -> Tuple[float, float, float]:
        return tuple(float((a + b) / 2.0) for a, b in zip(self.minimum, self.maximum))


class FlatBuffers(NamedTuple):
    """Non-indexed float32 buffers, three floats per position/normal."""
    positions: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray


def _frozen(values, width: int, dtype) -> np.ndarray:
    arr = np.array(values, dtype=dtype, copy=True).reshape(-1, width)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class TriangleMesh:
    """Triangle mesh with optional index, normal, uv and material groups.

    When ``indices`` is None the positions are a triangle soup (every three
    consecutive vertices form one triangle).
    """

    positions: np.ndarray
    indices: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    uvs: Optional[np.ndarray] = None
    groups: Tuple[MaterialGroup, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "positions", _frozen(self.positions, 3, np.float64))
        if self.indices is not None:
            object.__setattr__(self, "indices", _frozen(self.indices, 3, np.int64))
        if self.normals is not None:
            object.__setattr__(self, "normals", _frozen(self.normals, 3, np.float64))
        if self.uvs is not None:
            object.__setattr__(self, "uvs", _frozen(self.uvs, 2, np.float64))
        object.__setattr__(self, "groups", tuple(self.groups))

    @classmethod
    def empty(cls) -> "TriangleMesh":
        return cls(
            positions=np.zeros((0, 3)),
            indices=np.zeros((0, 3), dtype=np.int64),
            normals=np.zeros((0, 3)),
            uvs=np.zeros((0, 2)),
        )

    @property
    def vertex_count(self) -> int:
        return int(len(self.positions))

    @property
    def triangle_count(self) -> int:
        if self.indices is not None:
            return int(len(self.indices))
        return self.vertex_count // 3

    @property
    def is_empty(self) -> bool:
        return self.triangle_count == 0

    @property
    def bounds(self) -> Optional[Bounds]:
        if self.vertex_count == 0:
            return None
        used = self.positions[np.unique(self.face_indices())] if self.triangle_count else self.positions
        lo = used.min(axis=0)
        hi = used.max(axis=0)
        return Bounds(
            minimum=(float(lo[0]), float(lo[1]), float(lo[2])),
            maximum=(float(hi[0]), float(hi[1]), float(hi[2])),
        )

    def face_indices(self) -> np.ndarray:
        """(F, 3) vertex indices, synthesizing sequential ones for soups."""
        if self.indices is not None:
            return self.indices
        n = self.vertex_count - self.vertex_count % 3
        return np.arange(n, dtype=np.int64).reshape(-1, 3)

    def triangles(self) -> np.ndarray:
        """(F, 3, 3) corner positions."""
        return self.positions[self.face_indices()]

    def with_material(self, material_index: int) -> "TriangleMesh":
        """Copy with one group spanning every triangle."""
        groups = ()
        if self.triangle_count:
            groups = (MaterialGroup(0, self.triangle_count, int(material_index)),)
        return TriangleMesh(self.positions, self.indices, self.normals, self.uvs, groups)

    def transformed(self, matrix: np.ndarray) -> "TriangleMesh":
        """Apply a 4x4 homogeneous transform, returning a new mesh."""
        matrix = np.asarray(matrix, dtype=float)
        positions = self.positions @ matrix[:3, :3].T + matrix[:3, 3]
        normals = None
        if self.normals is not None:
            normal_matrix = np.linalg.inv(matrix[:3, :3]).T
            normals = _normalize_rows(self.normals @ normal_matrix.T)
        indices = self.indices
        if np.linalg.det(matrix[:3, :3]) < 0:
            # mirrored transforms flip winding
            indices = self.face_indices()[:, ::-1]
        return TriangleMesh(positions, indices, normals, self.uvs, self.groups)

    def translated(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> "TriangleMesh":
        return self.transformed(translation((dx, dy, dz)))

    def rotated_z(self, degrees: float) -> "TriangleMesh":
        if not degrees:
            return self
        return self.transformed(rotation_z(degrees))

    def flat_buffers(self) -> FlatBuffers:
        """Expand to non-indexed float32 buffers for renderers/exporters."""
        faces = self.face_indices().reshape(-1)
        normals = self.normals
        if normals is None:
            normals = compute_vertex_normals(self.positions, self.face_indices())
        uvs = self.uvs if self.uvs is not None else np.zeros((self.vertex_count, 2))
        return FlatBuffers(
            positions=self.positions[faces].astype(np.float32).reshape(-1),
            normals=normals[faces].astype(np.float32).reshape(-1),
            uvs=uvs[faces].astype(np.float32).reshape(-1),
        )

    def to_trimesh(self, process: bool = True) -> trimesh.Trimesh:
        """Convert to trimesh; ``process`` welds coincident vertices."""
        return trimesh.Trimesh(
            vertices=np.array(self.positions),
            faces=np.array(self.face_indices()),
            process=process,
        )

    @classmethod
    def from_trimesh(
        cls, mesh: trimesh.Trimesh, material_index: Optional[int] = None,
    ) -> "TriangleMesh":
        faces = np.asarray(mesh.faces, dtype=np.int64)
        normals = None
        if len(faces):
            normals = np.asarray(mesh.vertex_normals, dtype=float)
        result = cls(
            positions=np.asarray(mesh.vertices, dtype=float),
            indices=faces,
            normals=normals,
        )
        if material_index is not None:
            result = result.with_material(material_index)
        return result


class MeshBuilder:
    """Push-based accumulator producing one TriangleMesh."""

    def __init__(self):
        self._positions: List[np.ndarray] = []
        self._normals: List[np.ndarray] = []
        self._uvs: List[np.ndarray] = []
        self._indices: List[np.ndarray] = []
        self._vertex_count = 0
        self._triangle_count = 0
        self._groups: List[MaterialGroup] = []
        self._group_start: Optional[int] = None
        self._group_material = 0

    @property
    def triangle_count(self) -> int:
        return self._triangle_count

    def begin_group(self, material_index: int) -> None:
        """Close the open group (if any) and start a new one."""
        self._close_group()
        self._group_start = self._triangle_count
        self._group_material = int(material_index)

    def _close_group(self) -> None:
        if self._group_start is None:
            return
        count = self._triangle_count - self._group_start
        if count > 0:
            self._groups.append(MaterialGroup(self._group_start, count, self._group_material))
        self._group_start = None

    def add_indexed(
        self,
        vertices: np.ndarray,
        faces: np.ndarray,
        normals: Optional[np.ndarray] = None,
        uvs: Optional[np.ndarray] = None,
    ) -> None:
        vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)
        faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        if len(faces) == 0:
            return
        if normals is None:
            normals = compute_vertex_normals(vertices, faces)
        if uvs is None:
            uvs = vertices[:, :2]
        self._positions.append(vertices)
        self._normals.append(np.asarray(normals, dtype=float).reshape(-1, 3))
        self._uvs.append(np.asarray(uvs, dtype=float).reshape(-1, 2))
        self._indices.append(faces + self._vertex_count)
        self._vertex_count += len(vertices)
        self._triangle_count += len(faces)

    def add_triangles(
        self,
        triangles: np.ndarray,
        uvs: Optional[np.ndarray] = None,
    ) -> None:
        """Append flat-shaded triangles given as (K, 3, 3) corners."""
        triangles = np.asarray(triangles, dtype=float).reshape(-1, 3, 3)
        k = len(triangles)
        if k == 0:
            return
        normals = np.repeat(face_normals(triangles), 3, axis=0)
        if uvs is not None:
            uvs = np.asarray(uvs, dtype=float).reshape(-1, 2)
        faces = np.arange(3 * k, dtype=np.int64).reshape(-1, 3)
        self.add_indexed(triangles.reshape(-1, 3), faces, normals=normals, uvs=uvs)

    def add_quads(self, quads: np.ndarray, uvs: Optional[np.ndarray] = None) -> None:
        """Append (K, 4, 3) quads as triangles (0, 1, 2) and (0, 2, 3)."""
        quads = np.asarray(quads, dtype=float).reshape(-1, 4, 3)
        if len(quads) == 0:
            return
        tris = np.concatenate([quads[:, [0, 1, 2]], quads[:, [0, 2, 3]]], axis=1).reshape(-1, 3, 3)
        tri_uvs = None
        if uvs is not None:
            uvs = np.asarray(uvs, dtype=float).reshape(-1, 4, 2)
            tri_uvs = np.concatenate([uvs[:, [0, 1, 2]], uvs[:, [0, 2, 3]]], axis=1).reshape(-1, 2)
        self.add_triangles(tris, uvs=tri_uvs)

    def add_mesh(self, mesh: TriangleMesh) -> None:
        if mesh.is_empty:
            return
        self.add_indexed(mesh.positions, mesh.face_indices(), mesh.normals, mesh.uvs)

    def build(self) -> TriangleMesh:
        self._close_group()
        if not self._positions:
            return TriangleMesh.empty()
        return TriangleMesh(
            positions=np.concatenate(self._positions),
            indices=np.concatenate(self._indices),
            normals=np.concatenate(self._normals),
            uvs=np.concatenate(self._uvs),
            groups=tuple(self._groups),
        )


def merge_meshes(
    meshes: Iterable[Optional[TriangleMesh]],
    use_groups: bool = True,
    material_indices: Optional[Sequence[int]] = None,
) -> TriangleMesh:
    """Concatenate meshes into one buffer.

    With ``use_groups`` each input becomes one material group whose slot is
    its position in *meshes* (or the matching entry of ``material_indices``).
    Otherwise the inputs' own groups are carried over.
    """
    builder = MeshBuilder()
    carried: List[MaterialGroup] = []
    for i, mesh in enumerate(meshes):
        if mesh is None or mesh.is_empty:
            continue
        offset = builder.triangle_count
        if use_groups:
            slot = material_indices[i] if material_indices is not None else i
            builder.begin_group(slot)
        else:
            carried.extend(
                MaterialGroup(g.start + offset, g.count, g.material_index) for g in mesh.groups
            )
        builder.add_mesh(mesh)
    merged = builder.build()
    if not use_groups and carried:
        merged = TriangleMesh(merged.positions, merged.indices, merged.normals, merged.uvs, tuple(carried))
    return merged


def face_normals(triangles: np.ndarray) -> np.ndarray:
    """Unit normals for (K, 3, 3) triangles; degenerate faces give zeros."""
    triangles = np.asarray(triangles, dtype=float)
    cross = np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])
    return _normalize_rows(cross)


def compute_vertex_normals(positions: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Area-weighted vertex normals."""
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    normals = np.zeros_like(positions)
    if len(faces) == 0:
        return normals
    tris = positions[faces]
    cross = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    for corner in range(3):
        np.add.at(normals, faces[:, corner], cross)
    return _normalize_rows(normals)


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(lengths > 1e-12, lengths, 1.0)
    return np.where(lengths > 1e-12, vectors / safe, 0.0)


# Unit cube as 12 outward-facing triangles, corners in [0, 1]^3.
_UNIT_BOX = np.array(
    [
        [[0, 0, 0], [0, 1, 0], [1, 1, 0]], [[0, 0, 0], [1, 1, 0], [1, 0, 0]],  # -z
        [[0, 0, 1], [1, 0, 1], [1, 1, 1]], [[0, 0, 1], [1, 1, 1], [0, 1, 1]],  # +z
        [[0, 0, 0], [1, 0, 0], [1, 0, 1]], [[0, 0, 0], [1, 0, 1], [0, 0, 1]],  # -y
        [[0, 1, 0], [0, 1, 1], [1, 1, 1]], [[0, 1, 0], [1, 1, 1], [1, 1, 0]],  # +y
        [[0, 0, 0], [0, 0, 1], [0, 1, 1]], [[0, 0, 0], [0, 1, 1], [0, 1, 0]],  # -x
        [[1, 0, 0], [1, 1, 0], [1, 1, 1]], [[1, 0, 0], [1, 1, 1], [1, 0, 1]],  # +x
    ],
    dtype=float,
)


def box_triangles(minimums: np.ndarray, sizes: np.ndarray) -> np.ndarray:
    """(K*12, 3, 3) triangles of K axis-aligned boxes."""
    minimums = np.asarray(minimums, dtype=float).reshape(-1, 1, 1, 3)
    sizes = np.asarray(sizes, dtype=float).reshape(-1, 1, 1, 3)
    boxes = minimums + _UNIT_BOX[None] * sizes
    return boxes.reshape(-1, 3, 3)
