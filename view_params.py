#!/usr/bin/env python3
"""
view_params.py

FUSECUT View Parameter Index
----------------------------
- Maps dense camera indices (0..N-1) to SfM view ids
- Only views with both a pose and an intrinsic become cameras
- Resolves depth maps per camera: <depth_maps_folder>/<viewId>_depthMap.{exr,npy,tif,tiff,png}
- Camera selection against the reconstruction volume
"""

import os
from pathlib import Path
from typing import List, Optional

# Must be set before cv2 is imported anywhere for EXR depth maps to load
os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")

import cv2
import numpy as np

from errors import SceneIOError
from geometry import check_hexahedron, points_in_hexahedron
from sfm.camera import depths, in_image, project_points
from sfm.data import Intrinsic, Pose, Scene, View

DEPTH_MAP_SUFFIX = "_depthMap"
DEPTH_MAP_EXTS = (".exr", ".npy", ".tif", ".tiff", ".png")


class ViewParams:
    """
    Per-camera access for the dense stages.

    Camera index i is the i-th valid view in ascending view id order, so the
    mapping is stable for a given scene.
    """

    def __init__(self, scene: Scene, depth_maps_folder: Optional[Path] = None, read_depth_maps: bool = True):
        self.scene = scene
        self.depth_maps_folder = Path(depth_maps_folder) if depth_maps_folder else None
        self.read_depth_maps = read_depth_maps and self.depth_maps_folder is not None

        self._view_ids: List[int] = scene.valid_view_ids()
        self._index_of = {view_id: i for i, view_id in enumerate(self._view_ids)}

        if self.read_depth_maps and not self.depth_maps_folder.is_dir():
            raise SceneIOError(f"Depth maps folder not found: {self.depth_maps_folder}", self.depth_maps_folder)

    # --------------------------------------------------
    # Index
    # --------------------------------------------------
    @property
    def nb_cameras(self) -> int:
        return len(self._view_ids)

    def all_cameras(self) -> List[int]:
        return list(range(self.nb_cameras))

    def get_view_id(self, cam: int) -> int:
        return self._view_ids[cam]

    def get_index_from_view_id(self, view_id: int) -> Optional[int]:
        return self._index_of.get(view_id)

    def get_view(self, cam: int) -> View:
        return self.scene.views[self._view_ids[cam]]

    def get_intrinsic(self, cam: int) -> Intrinsic:
        return self.scene.get_intrinsic(self.get_view(cam))

    def get_pose(self, cam: int) -> Pose:
        return self.scene.get_pose(self.get_view(cam))

    def camera_center(self, cam: int) -> np.ndarray:
        return self.get_pose(cam).center

    def project(self, cam: int, points, apply_distortion: bool = True) -> np.ndarray:
        return project_points(self.get_pose(cam), self.get_intrinsic(cam), points, apply_distortion)

    # --------------------------------------------------
    # Depth maps
    # --------------------------------------------------
    def depth_map_path(self, cam: int) -> Optional[Path]:
        if not self.read_depth_maps:
            return None

        stem = f"{self.get_view_id(cam)}{DEPTH_MAP_SUFFIX}"
        for ext in DEPTH_MAP_EXTS:
            candidate = self.depth_maps_folder / f"{stem}{ext}"
            if candidate.exists():
                return candidate
        return None

    def has_depth_map(self, cam: int) -> bool:
        return self.depth_map_path(cam) is not None

    def load_depth_map(self, cam: int) -> Optional[np.ndarray]:
        """Depth along the optical axis, float32 (H, W). Non-positive values mean no depth."""
        path = self.depth_map_path(cam)
        if path is None:
            return None

        if path.suffix == ".npy":
            try:
                depth = np.load(path)
            except (OSError, ValueError) as exc:
                raise SceneIOError(f"Cannot read depth map: {path}: {exc}", path) from exc
        else:
            depth = cv2.imread(str(path), cv2.IMREAD_ANYDEPTH | cv2.IMREAD_UNCHANGED)
            if depth is None:
                raise SceneIOError(f"Cannot read depth map: {path}", path)

        depth = np.asarray(depth, dtype=np.float32)
        if depth.ndim == 3:
            depth = depth[:, :, 0]
        return depth

    # --------------------------------------------------
    # Camera selection
    # --------------------------------------------------
    def intersects_hexahedron(self, cam: int, hexah) -> bool:
        pose = self.get_pose(cam)
        intrinsic = self.get_intrinsic(cam)

        if points_in_hexahedron(hexah, pose.center[None, :])[0]:
            return True

        corners = np.asarray(hexah, dtype=np.float64)
        front = depths(pose, corners) > 0.0
        if not np.any(front):
            return False

        pix = project_points(pose, intrinsic, corners[front], apply_distortion=False)
        if np.any(in_image(intrinsic, pix)):
            return True

        # Volume may cover the whole image without any corner inside it
        (u0, v0), (u1, v1) = pix.min(axis=0), pix.max(axis=0)
        return bool(u0 < intrinsic.width and u1 >= 0.0 and v0 < intrinsic.height and v1 >= 0.0)

    def cams_intersecting_hexahedron(self, hexah) -> List[int]:
        hexah = check_hexahedron(hexah)
        return [cam for cam in range(self.nb_cameras) if self.intersects_hexahedron(cam, hexah)]


def select_cameras(view_params: ViewParams, hexah, from_depth_maps: bool) -> List[int]:
    """Cameras contributing to the reconstruction, sorted and unique."""
    if from_depth_maps:
        return view_params.cams_intersecting_hexahedron(hexah)
    return view_params.all_cameras()
