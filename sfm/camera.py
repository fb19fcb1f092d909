"""
camera.py

Projection through a pose and an intrinsic, with optional lens distortion.
"""

import numpy as np

from sfm.data import Intrinsic, Pose

SUPPORTED_MODELS = {"pinhole", "radial1", "radial3", "brown"}


def _distort(intrinsic: Intrinsic, xy: np.ndarray) -> np.ndarray:
    params = list(intrinsic.distortion)
    model = intrinsic.model

    if model == "pinhole" or not params:
        return xy

    r2 = np.sum(xy * xy, axis=1, keepdims=True)

    if model == "radial1":
        k1 = params[0]
        return xy * (1.0 + k1 * r2)

    k1, k2, k3 = (params + [0.0, 0.0, 0.0])[:3]
    radial = 1.0 + k1 * r2 + k2 * r2 ** 2 + k3 * r2 ** 3

    if model == "radial3":
        return xy * radial

    # brown: radial3 + tangential
    t1, t2 = (params[3:] + [0.0, 0.0])[:2]
    x, y = xy[:, :1], xy[:, 1:]
    dx = 2.0 * t1 * x * y + t2 * (r2 + 2.0 * x * x)
    dy = t1 * (r2 + 2.0 * y * y) + 2.0 * t2 * x * y
    return xy * radial + np.hstack([dx, dy])


def project_points(pose: Pose, intrinsic: Intrinsic, points, apply_distortion: bool = True) -> np.ndarray:
    """Project (N, 3) world points to (N, 2) pixel coordinates."""
    if intrinsic.model not in SUPPORTED_MODELS:
        raise ValueError(f"Unsupported camera model: {intrinsic.model}")

    cam = pose.to_camera(points)
    xy = cam[:, :2] / cam[:, 2:3]

    if apply_distortion:
        xy = _distort(intrinsic, xy)

    return xy * intrinsic.focal_length + np.asarray(intrinsic.principal_point, dtype=np.float64)


def project(pose: Pose, intrinsic: Intrinsic, point, apply_distortion: bool = True) -> np.ndarray:
    return project_points(pose, intrinsic, np.asarray(point).reshape(1, 3), apply_distortion)[0]


def depths(pose: Pose, points) -> np.ndarray:
    """Z of the points in the camera frame (positive in front of the camera)."""
    return pose.to_camera(points)[:, 2]


def backproject(pose: Pose, intrinsic: Intrinsic, pixels, depth) -> np.ndarray:
    """
    Lift pixels with their depth (distance along the optical axis) to world points.
    Depth maps are expected undistorted, so no distortion is removed here.
    """
    pixels = np.asarray(pixels, dtype=np.float64).reshape(-1, 2)
    depth = np.asarray(depth, dtype=np.float64).reshape(-1, 1)

    xy = (pixels - np.asarray(intrinsic.principal_point, dtype=np.float64)) / intrinsic.focal_length
    cam = np.hstack([xy * depth, depth])
    return pose.to_world(cam)


def in_image(intrinsic: Intrinsic, pixels) -> np.ndarray:
    pixels = np.asarray(pixels, dtype=np.float64).reshape(-1, 2)
    return (
        (pixels[:, 0] >= 0.0)
        & (pixels[:, 1] >= 0.0)
        & (pixels[:, 0] < intrinsic.width)
        & (pixels[:, 1] < intrinsic.height)
    )
