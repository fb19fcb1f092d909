"""
Engine contracts for the meshing pipeline.

The orchestrator only talks to these interfaces. Default implementations
live next to this module (space.py, fusion.py, surface.py); tests swap in
deterministic fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from mesh import Mesh
from sfm.data import Scene


@dataclass
class FusedPointSet:
    """
    Fused dense points and, for each one, the sorted camera indices that see it.

    points[i] <-> visibilities[i]; a visibility list may be empty.
    """
    points: np.ndarray
    visibilities: List[List[int]] = field(default_factory=list)

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        if len(self.visibilities) != len(self.points):
            raise ValueError(
                f"Fused point set mismatch: {len(self.points)} points, "
                f"{len(self.visibilities)} visibility lists"
            )

    def __len__(self) -> int:
        return len(self.points)


class VolumeEstimator(ABC):
    """Computes the eight-corner reconstruction volume."""

    @abstractmethod
    def from_depth_maps(self, view_params, cameras: List[int]) -> Tuple[np.ndarray, float]:
        """Return (hexahedron, min_pixel_size) from depth map statistics."""

    @abstractmethod
    def from_scene(self, scene: Scene, min_observations: int, min_angle_deg: float) -> np.ndarray:
        """Return a hexahedron bounding the well-triangulated landmarks."""


class DenseFusionEngine(ABC):

    @abstractmethod
    def fuse(
        self,
        hexah: np.ndarray,
        cameras: List[int],
        fuse_params: Optional[dict],
        scene: Optional[Scene],
    ) -> FusedPointSet:
        """
        Fuse depth samples (when fuse_params is given) and scene landmarks
        (when scene is given) lying inside hexah.
        """


class SurfaceSolver(ABC):
    """Stateful surface extraction: build, cut, post-process, then query."""

    @abstractmethod
    def build_and_cut(
        self,
        hexah: np.ndarray,
        cameras: List[int],
        fused: FusedPointSet,
        t_edge_delta: float = 0.1,
        seed: int = 0,
    ) -> None:
        ...

    @abstractmethod
    def post_process(self, hexah: np.ndarray) -> None:
        ...

    @abstractmethod
    def extract_mesh(self) -> Mesh:
        ...

    @abstractmethod
    def visibility_per_vertex(self) -> List[List[int]]:
        """Camera indices observing each vertex of the current (post-processed) mesh."""

    def release(self) -> None:
        """Drop internal geometry. Called exactly once by the orchestrator."""
