#!/usr/bin/env python3
"""
surface.py

FUSECUT Surface Solver (Open3D)
-------------------------------
- Normals estimated on the fused cloud, oriented toward the observing cameras
- Screened Poisson reconstruction
- force_t_edge_delta > 0: lowest-density vertex quantile trimmed (weakly supported surface)
- Post-processing through utils.mesh_cleanup
- Per-vertex visibility from the nearest fused point
"""

import logging
from typing import List, Optional

import numpy as np
import open3d as o3d

from engines.base import FusedPointSet, SurfaceSolver
from mesh import Mesh
from utils.mesh_cleanup import cleanup_mesh

_log = logging.getLogger("FUSECUT::surface")


class PoissonSurfaceSolver(SurfaceSolver):

    def __init__(
        self,
        view_params,
        poisson_depth: int = 9,
        min_component_triangles: int = 10,
        max_solver_points: int = 2_000_000,
        logger=None,
    ):
        self.view_params = view_params
        self.poisson_depth = int(poisson_depth)
        self.min_component_triangles = int(min_component_triangles)
        self.max_solver_points = int(max_solver_points)
        self.logger = logger or _log

        self._mesh: Optional[o3d.geometry.TriangleMesh] = None
        self._pcd: Optional[o3d.geometry.PointCloud] = None
        self._visibilities: List[List[int]] = []
        self.report = {}

    # --------------------------------------------------
    def _orient_normals(self, pcd, visibilities: List[List[int]], cameras: List[int]):
        points = np.asarray(pcd.points)
        normals = np.asarray(pcd.normals)
        fallback = np.mean([self.view_params.camera_center(c) for c in cameras], axis=0)

        targets = np.empty_like(points)
        for i, cams in enumerate(visibilities):
            if cams:
                targets[i] = np.mean([self.view_params.camera_center(c) for c in cams], axis=0)
            else:
                targets[i] = fallback

        flip = np.einsum("ij,ij->i", normals, targets - points) < 0.0
        normals[flip] *= -1.0
        pcd.normals = o3d.utility.Vector3dVector(normals)

    def build_and_cut(self, hexah, cameras: List[int], fused: FusedPointSet, t_edge_delta: float = 0.1, seed: int = 0):
        self._mesh = o3d.geometry.TriangleMesh()
        self._pcd = None
        self._visibilities = []

        if len(fused) == 0:
            self.logger.warning("[surface] No fused point, nothing to mesh")
            return

        rng = np.random.default_rng(seed if seed else None)
        keep = np.arange(len(fused))
        if len(keep) > self.max_solver_points:
            keep = np.sort(rng.choice(len(fused), self.max_solver_points, replace=False))
            self.logger.info(f"[surface] Subsampled {len(fused):,} -> {len(keep):,} points (seed={seed})")

        points = fused.points[keep]
        visibilities = [fused.visibilities[i] for i in keep]

        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(points)

        # Sparse clouds (SfM only) need a radius reaching past the nearest neighbors
        diag = float(np.linalg.norm(np.ptp(points, axis=0)))
        spacing = float(np.median(np.asarray(pcd.compute_nearest_neighbor_distance()))) if len(points) > 1 else 0.0
        radius = max(diag * 0.01, spacing * 3.0, 1e-6)
        self.logger.info(f"[surface] Estimating normals (r={radius:.4f}, nn=30)")
        pcd.estimate_normals(search_param=o3d.geometry.KDTreeSearchParamHybrid(radius=radius, max_nn=30))
        pcd.normalize_normals()
        self._orient_normals(pcd, visibilities, cameras)

        self.logger.info(f"[surface] Poisson reconstruction (depth={self.poisson_depth})")
        mesh, densities = o3d.geometry.TriangleMesh.create_from_point_cloud_poisson(pcd, depth=self.poisson_depth)
        self.logger.info(f"[surface] Raw mesh: {len(mesh.vertices):,} vertices, {len(mesh.triangles):,} triangles")

        if t_edge_delta > 0.0 and len(mesh.vertices):
            densities = np.asarray(densities)
            cutoff = np.quantile(densities, float(t_edge_delta))
            mask = densities < cutoff
            mesh.remove_vertices_by_mask(mask)
            self.logger.info(f"[surface] Density trim (delta={t_edge_delta}) removed {int(mask.sum()):,} vertices")

        self._mesh = mesh
        self._pcd = pcd
        self._visibilities = visibilities

    def post_process(self, hexah):
        if self._mesh is None:
            raise RuntimeError("build_and_cut must run before post_process")

        self._mesh, self.report = cleanup_mesh(
            self._mesh, hexah, min_component_triangles=self.min_component_triangles, logger=self.logger
        )

    def extract_mesh(self) -> Mesh:
        if self._mesh is None:
            return Mesh(points=np.zeros((0, 3)), triangles=np.zeros((0, 3), dtype=np.int64))
        return Mesh.from_open3d(self._mesh)

    def visibility_per_vertex(self) -> List[List[int]]:
        if self._mesh is None or self._pcd is None or not self._mesh.has_vertices():
            return []

        tree = o3d.geometry.KDTreeFlann(self._pcd)
        out = []
        for vertex in np.asarray(self._mesh.vertices):
            _, idx, _ = tree.search_knn_vector_3d(vertex, 1)
            out.append(list(self._visibilities[idx[0]]) if len(idx) else [])
        return out

    def release(self):
        self._mesh = None
        self._pcd = None
        self._visibilities = []
