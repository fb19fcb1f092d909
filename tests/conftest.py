"""
Shared fixtures for the meshing test suite.

The synthetic scene is four pinhole cameras on a circle of radius 4 around
the origin, looking at it, plus landmarks sampled on the unit sphere and
observed by every camera that sees them.
"""

import logging

import numpy as np
import pytest

from config_manager import load_config
from engines.base import DenseFusionEngine, FusedPointSet, SurfaceSolver, VolumeEstimator
from geometry import hexahedron_from_bounds
from mesh import Mesh
from meshing import MeshingEngines
from sfm.camera import depths, in_image, project_points
from sfm.data import Intrinsic, Landmark, Observation, Pose, Scene, View


# ---------------------------------------------------------------------------
# Synthetic scene
# ---------------------------------------------------------------------------

def look_at(center, target=(0.0, 0.0, 0.0), up=(0.0, 0.0, 1.0)) -> np.ndarray:
    center = np.asarray(center, dtype=np.float64)
    z = np.asarray(target, dtype=np.float64) - center
    z /= np.linalg.norm(z)
    x = np.cross(z, up)
    x /= np.linalg.norm(x)
    y = np.cross(z, x)
    return np.stack([x, y, z])


def fibonacci_sphere(n: int, radius: float = 1.0) -> np.ndarray:
    i = np.arange(n) + 0.5
    phi = np.arccos(1.0 - 2.0 * i / n)
    theta = np.pi * (1.0 + 5.0 ** 0.5) * i
    return radius * np.stack(
        [np.cos(theta) * np.sin(phi), np.sin(theta) * np.sin(phi), np.cos(phi)], axis=1
    )


def build_scene(nb_landmarks: int = 60, width: int = 640, height: int = 480, focal: float = 500.0) -> Scene:
    scene = Scene()
    scene.intrinsics[0] = Intrinsic(
        intrinsic_id=0,
        width=width,
        height=height,
        focal_length=focal,
        principal_point=(width / 2.0, height / 2.0),
    )

    for k, angle in enumerate(np.radians([0.0, 90.0, 180.0, 270.0])):
        center = np.array([4.0 * np.cos(angle), 4.0 * np.sin(angle), 0.0])
        view_id = 10 + k
        scene.poses[view_id] = Pose(rotation=look_at(center), center=center)
        scene.views[view_id] = View(
            view_id=view_id, pose_id=view_id, intrinsic_id=0, image_path=f"img_{k}.png", width=width, height=height
        )

    for i, X in enumerate(fibonacci_sphere(nb_landmarks)):
        landmark = Landmark(X=X, describer_type="sift")
        for view_id, view in scene.views.items():
            pose = scene.poses[view.pose_id]
            facing = np.dot(X, pose.center - X) > 0.0
            pix = project_points(pose, scene.intrinsics[0], X[None, :])
            if facing and depths(pose, X[None, :])[0] > 0 and in_image(scene.intrinsics[0], pix)[0]:
                landmark.observations[view_id] = Observation(x=pix[0], feature_id=i, scale=1.0)
        scene.landmarks[i] = landmark

    return scene


@pytest.fixture
def scene():
    return build_scene()


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def logger():
    log = logging.getLogger("FUSECUT::tests")
    log.setLevel(logging.DEBUG)
    return log


# ---------------------------------------------------------------------------
# Fake engines
# ---------------------------------------------------------------------------

UNIT_HEXAHEDRON = hexahedron_from_bounds([-1.5, -1.5, -1.5], [1.5, 1.5, 1.5])


class FakeVolumeEstimator(VolumeEstimator):

    def __init__(self, hexah=UNIT_HEXAHEDRON, min_pix_size=0.01):
        self.hexah = np.asarray(hexah, dtype=np.float64)
        self.min_pix_size = min_pix_size
        self.calls = []

    def from_depth_maps(self, view_params, cameras):
        self.calls.append(("depth_maps", list(cameras)))
        return self.hexah.copy(), self.min_pix_size

    def from_scene(self, scene, min_observations, min_angle_deg):
        self.calls.append(("scene", min_observations, min_angle_deg))
        return self.hexah.copy()


class FakeFusion(DenseFusionEngine):

    def __init__(self, fused: FusedPointSet):
        self.fused = fused
        self.calls = []

    def fuse(self, hexah, cameras, fuse_params, scene):
        self.calls.append({"cameras": list(cameras), "fuse_params": fuse_params, "scene": scene})
        return self.fused


class FakeSurface(SurfaceSolver):

    def __init__(self, mesh: Mesh, visibilities):
        self.mesh = mesh
        self.visibilities = visibilities
        self.calls = []
        self.released = 0

    def build_and_cut(self, hexah, cameras, fused, t_edge_delta=0.1, seed=0):
        self.calls.append(("build_and_cut", list(cameras), len(fused), t_edge_delta, seed))

    def post_process(self, hexah):
        self.calls.append(("post_process",))

    def extract_mesh(self):
        self.calls.append(("extract_mesh",))
        return self.mesh

    def visibility_per_vertex(self):
        self.calls.append(("visibility_per_vertex",))
        return self.visibilities

    def release(self):
        self.released += 1


def fake_colorizer(scene: Scene):
    for landmark_id, landmark in scene.landmarks.items():
        landmark.rgb = (landmark_id % 256, 100, 200)


def tetra_mesh() -> Mesh:
    return Mesh(
        points=[[0.0, 0.0, 0.0], [0.5, 0.0, 0.0], [0.0, 0.5, 0.0], [0.0, 0.0, 0.5]],
        triangles=[[0, 1, 2], [0, 1, 3], [0, 2, 3], [1, 2, 3]],
    )


@pytest.fixture
def fake_engines():
    """Factory building MeshingEngines from fakes; returns (engines, factory)."""

    def _make(mesh=None, visibilities=None, fused=None, hexah=UNIT_HEXAHEDRON):
        mesh = mesh if mesh is not None else tetra_mesh()
        if visibilities is None:
            visibilities = [[0, 1], [], [2], [0, 3]]
        if fused is None:
            fused = FusedPointSet(
                points=[[0.1, 0.1, 0.1], [0.2, 0.0, 0.0], [0.0, 0.3, 0.0]],
                visibilities=[[0], [1, 2], []],
            )

        engines = MeshingEngines(
            volume_estimator=FakeVolumeEstimator(hexah),
            fusion=FakeFusion(fused),
            surface=FakeSurface(mesh, visibilities),
            colorizer=fake_colorizer,
        )
        return engines, (lambda view_params, cfg, log: engines)

    return _make
