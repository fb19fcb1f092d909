#!/usr/bin/env python3
"""
fusion.py

FUSECUT Dense Fusion Engine
---------------------------
- Depth samples back-projected with a step derived from max_input_points / min_step
- Optional SfM landmarks merged with their observing cameras
- Voxel merge: positions averaged, visibilities united
- Voxel size grows until the cloud fits in max_points
- refine_fuse: cameras whose depth map agrees with a fused point join its visibility
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from engines.base import DenseFusionEngine, FusedPointSet
from geometry import points_in_hexahedron
from sfm.camera import backproject, depths
from sfm.data import Scene

_log = logging.getLogger("FUSECUT::fusion")

MAX_VOXEL_GROWTH = 32


def group_visibilities(groups: np.ndarray, cams: np.ndarray, nb_groups: int) -> List[List[int]]:
    """Sorted unique cameras per group from flat (group, cam) pairs."""
    visibilities: List[List[int]] = [[] for _ in range(nb_groups)]
    if len(groups) == 0:
        return visibilities

    pairs = np.unique(np.stack([groups, cams], axis=1).astype(np.int64), axis=0)
    splits = np.flatnonzero(np.diff(pairs[:, 0])) + 1
    for chunk in np.split(pairs, splits):
        visibilities[int(chunk[0, 0])] = chunk[:, 1].tolist()
    return visibilities


def voxel_merge(points: np.ndarray, voxel_size: float) -> Tuple[np.ndarray, np.ndarray]:
    """Return (merged points, sample -> merged index)."""
    origin = points.min(axis=0)
    keys = np.floor((points - origin) / voxel_size).astype(np.int64)
    _, inverse = np.unique(keys, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)

    nb = int(inverse.max()) + 1
    counts = np.bincount(inverse, minlength=nb).astype(np.float64)
    merged = np.stack(
        [np.bincount(inverse, weights=points[:, k], minlength=nb) / counts for k in range(3)],
        axis=1,
    )
    return merged, inverse


class DepthMapFusion(DenseFusionEngine):

    def __init__(self, view_params, logger=None):
        self.view_params = view_params
        self.logger = logger or _log

    # --------------------------------------------------
    # Samples
    # --------------------------------------------------
    def _depth_samples(self, hexah, cameras: List[int], params: dict):
        vp = self.view_params
        cams = [c for c in cameras if vp.has_depth_map(c)]
        if not cams:
            self.logger.warning("[fusion] No depth map available for the selected cameras")
            return np.zeros((0, 3)), np.zeros(0, dtype=np.int64), np.zeros(0), {}

        total_pixels = 0
        maps = {}
        for cam in cams:
            maps[cam] = vp.load_depth_map(cam)
            total_pixels += maps[cam].size

        step = max(int(params["min_step"]), int(np.ceil(np.sqrt(total_pixels / float(params["max_input_points"])))))
        self.logger.info(f"[fusion] {len(cams)} depth maps, {total_pixels:,} pixels, step={step}")

        pts, owners, pix_sizes = [], [], []
        for cam in cams:
            depth = maps[cam]
            intrinsic = vp.get_intrinsic(cam)
            pose = vp.get_pose(cam)

            rows, cols = np.mgrid[0:depth.shape[0]:step, 0:depth.shape[1]:step]
            values = depth[rows, cols]
            valid = np.isfinite(values) & (values > 0.0)
            if not np.any(valid):
                continue

            scale = intrinsic.width / depth.shape[1]
            pixels = np.stack([cols[valid], rows[valid]], axis=1) * scale
            world = backproject(pose, intrinsic, pixels, values[valid])

            inside = points_in_hexahedron(hexah, world)
            pts.append(world[inside])
            owners.append(np.full(int(inside.sum()), cam, dtype=np.int64))
            pix_sizes.append(values[valid][inside] * scale * step / intrinsic.focal_length)

        if not pts:
            return np.zeros((0, 3)), np.zeros(0, dtype=np.int64), np.zeros(0), maps

        return np.concatenate(pts), np.concatenate(owners), np.concatenate(pix_sizes), maps

    def _landmark_samples(self, hexah, cameras: List[int], scene: Scene):
        selected = set(cameras)
        pts, pair_sample, pair_cam = [], [], []

        for landmark_id in sorted(scene.landmarks):
            landmark = scene.landmarks[landmark_id]
            if not points_in_hexahedron(hexah, landmark.X[None, :])[0]:
                continue

            idx = len(pts)
            pts.append(landmark.X)
            for view_id in landmark.observations:
                cam = self.view_params.get_index_from_view_id(view_id)
                if cam is not None and cam in selected:
                    pair_sample.append(idx)
                    pair_cam.append(cam)

        return (
            np.array(pts, dtype=np.float64).reshape(-1, 3),
            np.array(pair_sample, dtype=np.int64),
            np.array(pair_cam, dtype=np.int64),
        )

    # --------------------------------------------------
    # Refinement
    # --------------------------------------------------
    def _refine(self, points: np.ndarray, cameras: List[int], params: dict, maps: dict):
        """Extra (point, cam) pairs for cameras whose depth map agrees with the point."""
        vp = self.view_params
        margin = float(params["contribute_margin_factor"])
        extra_points, extra_cams = [], []

        for cam in cameras:
            depth = maps.get(cam)
            if depth is None:
                continue

            intrinsic = vp.get_intrinsic(cam)
            pose = vp.get_pose(cam)
            z = depths(pose, points)
            front = np.flatnonzero(z > 0.0)
            if len(front) == 0:
                continue

            scale = intrinsic.width / depth.shape[1]
            pix = vp.project(cam, points[front], apply_distortion=False) / scale
            col = np.round(pix[:, 0]).astype(np.int64)
            row = np.round(pix[:, 1]).astype(np.int64)
            inside = (col >= 0) & (row >= 0) & (col < depth.shape[1]) & (row < depth.shape[0])

            idx = front[inside]
            measured = depth[row[inside], col[inside]]
            tolerance = margin * z[idx] * scale / intrinsic.focal_length
            agree = np.isfinite(measured) & (measured > 0.0) & (np.abs(measured - z[idx]) <= tolerance)

            extra_points.append(idx[agree])
            extra_cams.append(np.full(int(agree.sum()), cam, dtype=np.int64))

        if not extra_points:
            return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
        return np.concatenate(extra_points), np.concatenate(extra_cams)

    # --------------------------------------------------
    # Engine API
    # --------------------------------------------------
    def fuse(self, hexah, cameras: List[int], fuse_params: Optional[dict], scene: Optional[Scene]) -> FusedPointSet:
        cameras = sorted(set(cameras))

        lm_points, lm_pair_sample, lm_pair_cam = (
            self._landmark_samples(hexah, cameras, scene)
            if scene is not None
            else (np.zeros((0, 3)), np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64))
        )

        if fuse_params is None:
            # SfM only: landmarks are the dense cloud
            visibilities = group_visibilities(lm_pair_sample, lm_pair_cam, len(lm_points))
            self.logger.info(f"[fusion] {len(lm_points):,} landmarks used as dense points")
            return FusedPointSet(lm_points, visibilities)

        d_points, d_owners, pix_sizes, maps = self._depth_samples(hexah, cameras, fuse_params)
        self.logger.info(f"[fusion] {len(d_points):,} depth samples, {len(lm_points):,} landmarks")

        points = np.concatenate([d_points, lm_points])
        pair_sample = np.concatenate([np.arange(len(d_points), dtype=np.int64), lm_pair_sample + len(d_points)])
        pair_cam = np.concatenate([d_owners, lm_pair_cam])

        if len(points) == 0:
            return FusedPointSet(points, [])

        if len(pix_sizes):
            voxel = float(np.median(pix_sizes)) * float(fuse_params["pix_size_margin_init_coef"])
        else:
            voxel = float(np.max(np.ptp(points, axis=0))) / 1000.0
        voxel = max(voxel, 1e-9)

        max_points = int(fuse_params["max_points"])
        for _ in range(MAX_VOXEL_GROWTH):
            merged, inverse = voxel_merge(points, voxel)
            if len(merged) <= max_points:
                break
            voxel *= 1.5
        self.logger.info(f"[fusion] Voxel size {voxel:.6f} -> {len(merged):,} fused points")

        groups = inverse[pair_sample]
        cams = pair_cam

        if fuse_params.get("refine_fuse", False):
            extra_groups, extra_cams = self._refine(merged, cameras, fuse_params, maps)
            groups = np.concatenate([groups, extra_groups])
            cams = np.concatenate([cams, extra_cams])

        return FusedPointSet(merged, group_visibilities(groups, cams, len(merged)))
