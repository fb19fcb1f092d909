"""
mesh.py

Triangle mesh value type produced by the surface solver and exported
at the end of the meshing run.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import open3d as o3d

from errors import PreconditionError, SceneIOError


@dataclass
class Mesh:
    points: np.ndarray                      # (V, 3) float64
    triangles: np.ndarray                   # (T, 3) int64
    colors: Optional[np.ndarray] = None     # (V, 3) uint8

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        self.triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1, 3)
        if self.colors is not None:
            self.colors = np.asarray(self.colors, dtype=np.uint8).reshape(-1, 3)

    @property
    def num_vertices(self) -> int:
        return int(self.points.shape[0])

    @property
    def num_triangles(self) -> int:
        return int(self.triangles.shape[0])

    def is_empty(self) -> bool:
        return self.num_vertices == 0 or self.num_triangles == 0

    def init_colors(self):
        """Resize the color array to one black entry per vertex."""
        self.colors = np.zeros((self.num_vertices, 3), dtype=np.uint8)
        return self.colors

    def validate(self):
        if self.num_triangles:
            if self.triangles.min() < 0 or self.triangles.max() >= self.num_vertices:
                raise PreconditionError("Mesh triangle references a vertex out of range")

            t = self.triangles
            if np.any((t[:, 0] == t[:, 1]) | (t[:, 1] == t[:, 2]) | (t[:, 0] == t[:, 2])):
                raise PreconditionError("Mesh contains a triangle with repeated vertices")

        if self.colors is not None and len(self.colors) != self.num_vertices:
            raise PreconditionError(
                f"Mesh color count ({len(self.colors)}) does not match vertex count ({self.num_vertices})"
            )

    # ------------------------------------------------------------------
    # open3d bridge
    # ------------------------------------------------------------------
    def to_open3d(self) -> o3d.geometry.TriangleMesh:
        o3d_mesh = o3d.geometry.TriangleMesh()
        o3d_mesh.vertices = o3d.utility.Vector3dVector(self.points)
        o3d_mesh.triangles = o3d.utility.Vector3iVector(self.triangles.astype(np.int32))
        if self.colors is not None:
            o3d_mesh.vertex_colors = o3d.utility.Vector3dVector(self.colors.astype(np.float64) / 255.0)
        return o3d_mesh

    @classmethod
    def from_open3d(cls, o3d_mesh: o3d.geometry.TriangleMesh) -> "Mesh":
        colors = None
        if o3d_mesh.has_vertex_colors():
            colors = np.clip(np.round(np.asarray(o3d_mesh.vertex_colors) * 255.0), 0, 255)
        return cls(
            points=np.asarray(o3d_mesh.vertices).copy(),
            triangles=np.asarray(o3d_mesh.triangles).copy(),
            colors=colors,
        )


def save_as_triangle_mesh(mesh: Mesh, path: Path, logger=None):
    path = Path(path)
    mesh.validate()

    ok = o3d.io.write_triangle_mesh(
        str(path),
        mesh.to_open3d(),
        write_ascii=path.suffix.lower() == ".obj",
        write_vertex_normals=False,
        write_vertex_colors=mesh.colors is not None,
    )
    if not ok:
        raise SceneIOError(f"Failed to write mesh: {path}", path)

    if logger:
        logger.info(f"[mesh] Mesh written: {path} ({mesh.num_vertices:,} vertices, {mesh.num_triangles:,} triangles)")
