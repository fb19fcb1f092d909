"""
data.py

In-memory SfM scene: views, intrinsics, poses and landmarks.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

UNDEFINED_INDEX = -1
UNKNOWN_SCALE = 0.0
UNKNOWN_DESCRIBER = "unknown"
WHITE = (255, 255, 255)


@dataclass
class View:
    view_id: int
    pose_id: int
    intrinsic_id: int
    image_path: str = ""
    width: int = 0
    height: int = 0
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class Intrinsic:
    """
    Camera model.

    model: "pinhole", "radial1", "radial3" or "brown"
    distortion: radial1 -> [k1], radial3 -> [k1, k2, k3], brown -> [k1, k2, k3, t1, t2]
    """
    intrinsic_id: int
    width: int
    height: int
    focal_length: float
    principal_point: Tuple[float, float]
    model: str = "pinhole"
    distortion: List[float] = field(default_factory=list)


@dataclass
class Pose:
    """World -> camera transform: x_cam = R (X - C)."""
    rotation: np.ndarray
    center: np.ndarray
    locked: bool = False

    def __post_init__(self):
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        self.center = np.asarray(self.center, dtype=np.float64).reshape(3)

    def to_camera(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return (points - self.center) @ self.rotation.T

    def to_world(self, points_cam: np.ndarray) -> np.ndarray:
        points_cam = np.asarray(points_cam, dtype=np.float64).reshape(-1, 3)
        return points_cam @ self.rotation + self.center


@dataclass
class Observation:
    x: np.ndarray
    feature_id: int = UNDEFINED_INDEX
    scale: float = UNKNOWN_SCALE

    def __post_init__(self):
        self.x = np.asarray(self.x, dtype=np.float64).reshape(2)


@dataclass
class Landmark:
    X: np.ndarray
    describer_type: str = UNKNOWN_DESCRIBER
    rgb: Tuple[int, int, int] = WHITE
    observations: Dict[int, Observation] = field(default_factory=dict)

    def __post_init__(self):
        self.X = np.asarray(self.X, dtype=np.float64).reshape(3)


@dataclass
class Scene:
    views: Dict[int, View] = field(default_factory=dict)
    intrinsics: Dict[int, Intrinsic] = field(default_factory=dict)
    poses: Dict[int, Pose] = field(default_factory=dict)
    landmarks: Dict[int, Landmark] = field(default_factory=dict)

    # ------------------------------------------------------------------
    def get_view(self, view_id: int) -> View:
        return self.views[view_id]

    def get_intrinsic(self, view: View) -> Optional[Intrinsic]:
        return self.intrinsics.get(view.intrinsic_id)

    def get_pose(self, view: View) -> Optional[Pose]:
        return self.poses.get(view.pose_id)

    def is_pose_and_intrinsic_defined(self, view: View) -> bool:
        return view.pose_id in self.poses and view.intrinsic_id in self.intrinsics

    def valid_view_ids(self) -> List[int]:
        """View ids with both a pose and an intrinsic, sorted."""
        return sorted(v.view_id for v in self.views.values() if self.is_pose_and_intrinsic_defined(v))

    def copy_without_landmarks(self) -> "Scene":
        # Views, intrinsics and poses are shared, never mutated downstream
        return Scene(
            views=dict(self.views),
            intrinsics=dict(self.intrinsics),
            poses=dict(self.poses),
            landmarks={},
        )

    def validate(self):
        """Every view must reference a known intrinsic, every observation a known view."""
        for view in self.views.values():
            if view.intrinsic_id != UNDEFINED_INDEX and view.intrinsic_id not in self.intrinsics:
                raise ValueError(f"View {view.view_id} references unknown intrinsic {view.intrinsic_id}")

        for landmark_id, landmark in self.landmarks.items():
            for view_id in landmark.observations:
                if view_id not in self.views:
                    raise ValueError(f"Landmark {landmark_id} observed in unknown view {view_id}")
