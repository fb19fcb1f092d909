import json

import numpy as np
import open3d as o3d
import pytest

from errors import SceneIOError
from sfm.data import Intrinsic, Landmark, Observation, Pose, Scene, View
from sfm.io import ESfMData, load_scene, save_scene


def test_round_trip_preserves_scene(tmp_path, scene):
    scene.intrinsics[0].model = "radial3"
    scene.intrinsics[0].distortion = [0.01, -0.002, 0.0003]
    scene.views[10].metadata = {"Make": "Canon"}
    path = tmp_path / "scene.sfm"

    save_scene(scene, path, ESfMData.ALL)
    loaded = load_scene(path, ESfMData.ALL)

    assert sorted(loaded.views) == sorted(scene.views)
    assert loaded.views[10].metadata == {"Make": "Canon"}
    assert loaded.intrinsics[0].model == "radial3"
    assert loaded.intrinsics[0].distortion == pytest.approx([0.01, -0.002, 0.0003])
    np.testing.assert_allclose(loaded.poses[11].rotation, scene.poses[11].rotation)
    np.testing.assert_allclose(loaded.poses[11].center, scene.poses[11].center)

    landmark = next(lm for lm in scene.landmarks.values() if lm.observations)
    landmark_id = next(k for k, lm in scene.landmarks.items() if lm is landmark)
    view_id = next(iter(landmark.observations))
    obs = loaded.landmarks[landmark_id].observations[view_id]
    np.testing.assert_allclose(obs.x, landmark.observations[view_id].x)
    assert obs.feature_id == landmark.observations[view_id].feature_id


def test_dense_flags_drop_feature_ids(tmp_path, scene):
    path = tmp_path / "dense.sfm"
    save_scene(scene, path, ESfMData.ALL_DENSE)

    data = json.loads(path.read_text(encoding="utf-8"))
    observations = [obs for lm in data["structure"] for obs in lm["observations"]]
    assert observations
    assert all("featureId" not in obs for obs in observations)

    loaded = load_scene(path, ESfMData.ALL)
    assert all(
        obs.feature_id == -1 for lm in loaded.landmarks.values() for obs in lm.observations.values()
    )


def test_partial_load_skips_structure(tmp_path, scene):
    path = tmp_path / "scene.json"
    save_scene(scene, path, ESfMData.ALL)

    loaded = load_scene(path, ESfMData.VIEWS | ESfMData.INTRINSICS)
    assert loaded.views and loaded.intrinsics
    assert not loaded.poses and not loaded.landmarks


def test_output_is_sorted_and_stable(tmp_path):
    scene = Scene()
    scene.intrinsics[0] = Intrinsic(0, 10, 10, 5.0, (5.0, 5.0))
    for view_id in (7, 3):
        scene.views[view_id] = View(view_id, view_id, 0)
        scene.poses[view_id] = Pose(np.eye(3), [0.0, 0.0, float(view_id)])
    scene.landmarks[5] = Landmark([0, 0, 1], observations={7: Observation([1, 1]), 3: Observation([2, 2])})
    scene.landmarks[1] = Landmark([0, 0, 2])

    first, second = tmp_path / "a.sfm", tmp_path / "b.sfm"
    save_scene(scene, first)
    save_scene(scene, second)
    data = json.loads(first.read_text(encoding="utf-8"))

    assert first.read_bytes() == second.read_bytes()
    assert [v["viewId"] for v in data["views"]] == ["3", "7"]
    assert [lm["landmarkId"] for lm in data["structure"]] == ["1", "5"]
    assert [o["observationId"] for o in data["structure"][1]["observations"]] == ["3", "7"]


def test_missing_file(tmp_path):
    with pytest.raises(SceneIOError) as info:
        load_scene(tmp_path / "missing.sfm")
    assert info.value.path == tmp_path / "missing.sfm"


def test_malformed_file(tmp_path):
    path = tmp_path / "broken.sfm"
    path.write_text(json.dumps({"views": [{"poseId": "1"}]}), encoding="utf-8")

    with pytest.raises(SceneIOError, match="malformed"):
        load_scene(path)


def test_unknown_view_in_observation(tmp_path, scene):
    scene.landmarks[0].observations[999] = Observation([1.0, 1.0])
    path = tmp_path / "scene.sfm"
    save_scene(scene, path)

    with pytest.raises(SceneIOError):
        load_scene(path)


def test_unsupported_extension(tmp_path, scene):
    with pytest.raises(SceneIOError):
        save_scene(scene, tmp_path / "scene.abc")
    with pytest.raises(SceneIOError):
        load_scene(tmp_path / "scene.ply")


def test_ply_export(tmp_path, scene):
    path = tmp_path / "dense.ply"
    save_scene(scene, path, ESfMData.ALL_DENSE)

    pcd = o3d.io.read_point_cloud(str(path))
    assert len(pcd.points) == len(scene.landmarks)
    np.testing.assert_allclose(np.asarray(pcd.colors), 1.0)
