#!/usr/bin/env python3
"""
space.py

FUSECUT Reconstruction Space Estimation
---------------------------------------
- From SfM: landmarks filtered by observation count and triangulation angle
- From depth maps: back-projected depth samples
- Robust bounds: per-axis universe percentile, padded to a positive volume
"""

import logging
from typing import List, Tuple

import numpy as np

from engines.base import VolumeEstimator
from errors import PreconditionError
from geometry import hexahedron_from_bounds
from sfm.camera import backproject
from sfm.data import Scene

_log = logging.getLogger("FUSECUT::space")

MAX_DEPTH_SAMPLES = 2_000_000
MIN_PADDING = 1e-3


def max_observation_angle(X: np.ndarray, centers: np.ndarray) -> float:
    """Largest angle (degrees) between the rays from the camera centers to X."""
    rays = centers - X
    norms = np.linalg.norm(rays, axis=1)
    rays = rays[norms > 0] / norms[norms > 0, None]
    if len(rays) < 2:
        return 0.0

    cosines = np.clip(rays @ rays.T, -1.0, 1.0)
    return float(np.degrees(np.arccos(cosines.min())))


def robust_bounds(points: np.ndarray, universe_percentile: float):
    if universe_percentile >= 1.0:
        bmin, bmax = points.min(axis=0), points.max(axis=0)
    else:
        low = (1.0 - universe_percentile) * 100.0
        high = universe_percentile * 100.0
        bmin = np.percentile(points, low, axis=0)
        bmax = np.percentile(points, high, axis=0)

    # Flat point sets still need a volume
    extent = bmax - bmin
    pad = max(float(extent.max()) * 0.01, MIN_PADDING)
    flat = extent < pad
    bmin = np.where(flat, bmin - pad, bmin)
    bmax = np.where(flat, bmax + pad, bmax)
    return bmin, bmax


class SpaceEstimator(VolumeEstimator):

    def __init__(self, universe_percentile: float = 0.999, logger=None):
        self.universe_percentile = float(universe_percentile)
        self.logger = logger or _log

    # --------------------------------------------------
    def from_scene(self, scene: Scene, min_observations: int = 3, min_angle_deg: float = 10.0) -> np.ndarray:
        kept = []
        rejected_obs = 0
        rejected_angle = 0

        for landmark_id in sorted(scene.landmarks):
            landmark = scene.landmarks[landmark_id]

            centers = []
            for view_id in landmark.observations:
                view = scene.views.get(view_id)
                if view is not None and view.pose_id in scene.poses:
                    centers.append(scene.poses[view.pose_id].center)

            if len(centers) < min_observations:
                rejected_obs += 1
                continue

            if min_angle_deg > 0.0 and max_observation_angle(landmark.X, np.array(centers)) < min_angle_deg:
                rejected_angle += 1
                continue

            kept.append(landmark.X)

        self.logger.info(
            f"[space] SfM landmarks: {len(kept):,} kept, "
            f"{rejected_obs:,} under {min_observations} observations, "
            f"{rejected_angle:,} under {min_angle_deg:.1f} deg"
        )

        if not kept:
            raise PreconditionError("No landmark satisfies the space estimation thresholds")

        bmin, bmax = robust_bounds(np.array(kept), self.universe_percentile)
        self.logger.info(f"[space] Bounds min={np.round(bmin, 4).tolist()} max={np.round(bmax, 4).tolist()}")
        return hexahedron_from_bounds(bmin, bmax)

    # --------------------------------------------------
    def from_depth_maps(self, view_params, cameras: List[int]) -> Tuple[np.ndarray, float]:
        cams = [c for c in cameras if view_params.has_depth_map(c)]
        if not cams:
            raise PreconditionError("No depth map found to estimate the reconstruction space")

        budget = max(1, MAX_DEPTH_SAMPLES // len(cams))
        samples = []
        min_pix_size = np.inf

        for cam in cams:
            depth = view_params.load_depth_map(cam)
            intrinsic = view_params.get_intrinsic(cam)
            pose = view_params.get_pose(cam)

            step = max(1, int(np.ceil(np.sqrt(depth.size / budget))))
            rows, cols = np.mgrid[0:depth.shape[0]:step, 0:depth.shape[1]:step]
            values = depth[rows, cols]
            valid = np.isfinite(values) & (values > 0.0)
            if not np.any(valid):
                continue

            # Depth maps may be downscaled relative to the image
            scale = intrinsic.width / depth.shape[1]
            pixels = np.stack([cols[valid], rows[valid]], axis=1) * scale
            samples.append(backproject(pose, intrinsic, pixels, values[valid]))

            min_pix_size = min(min_pix_size, float(values[valid].min()) * scale / intrinsic.focal_length)

        if not samples:
            raise PreconditionError("Depth maps contain no valid depth to estimate the reconstruction space")

        points = np.concatenate(samples)
        bmin, bmax = robust_bounds(points, self.universe_percentile)

        self.logger.info(
            f"[space] Depth samples: {len(points):,} from {len(cams)} cameras, min pixel size {min_pix_size:.6f}"
        )
        return hexahedron_from_bounds(bmin, bmax), float(min_pix_size)
