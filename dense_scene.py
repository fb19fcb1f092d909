#!/usr/bin/env python3
"""
dense_scene.py

FUSECUT Dense Output Assembly
-----------------------------
- One landmark per dense point, keyed by the point index
- One observation per visible camera, projected with distortion
- Unknown describer type and scale on every synthesized observation
- Mesh colors copied from the unpruned landmarks (index i == vertex i)
- Pruning of landmarks without observations, always last
"""

from typing import List, Sequence

import numpy as np

from mesh import Mesh
from sfm.camera import project
from sfm.data import (
    UNDEFINED_INDEX,
    UNKNOWN_DESCRIBER,
    UNKNOWN_SCALE,
    Landmark,
    Observation,
    Scene,
)
from view_params import ViewParams


def create_dense_scene(
    scene: Scene,
    view_params: ViewParams,
    points: np.ndarray,
    visibilities: Sequence[List[int]],
) -> Scene:
    """Copy of scene whose landmarks are the given points with their projected observations."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(points) != len(visibilities):
        raise ValueError(
            f"Cannot build dense scene: {len(points)} points for {len(visibilities)} visibility lists"
        )

    dense = scene.copy_without_landmarks()

    for i, X in enumerate(points):
        landmark = Landmark(X=X, describer_type=UNKNOWN_DESCRIBER)

        for cam in visibilities[i]:
            view = view_params.get_view(cam)
            intrinsic = scene.get_intrinsic(view)
            pose = scene.get_pose(view)
            landmark.observations[view.view_id] = Observation(
                x=project(pose, intrinsic, X, apply_distortion=True),
                feature_id=UNDEFINED_INDEX,
                scale=UNKNOWN_SCALE,
            )

        dense.landmarks[i] = landmark

    return dense


def remove_landmarks_without_observations(scene: Scene) -> int:
    empty = [landmark_id for landmark_id, lm in scene.landmarks.items() if not lm.observations]
    for landmark_id in empty:
        del scene.landmarks[landmark_id]
    return len(empty)


def colorize_mesh(mesh: Mesh, dense: Scene) -> np.ndarray:
    """
    Fill mesh.colors from the landmark colors.

    Must run before pruning: landmarks are still keyed 0..V-1 then.
    """
    colors = mesh.init_colors()
    for i in range(mesh.num_vertices):
        colors[i] = dense.landmarks[i].rgb
    return colors
