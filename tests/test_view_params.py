import cv2
import numpy as np
import pytest

from conftest import UNIT_HEXAHEDRON
from errors import SceneIOError
from geometry import hexahedron_from_bounds
from sfm.data import View
from view_params import ViewParams, select_cameras


def test_camera_index_skips_views_without_pose(scene):
    scene.views[5] = View(view_id=5, pose_id=99, intrinsic_id=0)
    view_params = ViewParams(scene)

    assert view_params.nb_cameras == 4
    assert [view_params.get_view_id(c) for c in view_params.all_cameras()] == [10, 11, 12, 13]
    assert view_params.get_index_from_view_id(12) == 2
    assert view_params.get_index_from_view_id(5) is None
    np.testing.assert_allclose(view_params.camera_center(0), [4.0, 0.0, 0.0], atol=1e-12)


def test_missing_depth_maps_folder(scene, tmp_path):
    with pytest.raises(SceneIOError):
        ViewParams(scene, tmp_path / "missing")

    # Not read in SfM-only mode
    assert ViewParams(scene, tmp_path / "missing", read_depth_maps=False).depth_map_path(0) is None


def test_depth_map_lookup(scene, tmp_path):
    np.save(tmp_path / "10_depthMap.npy", np.full((4, 6), 2.5, dtype=np.float32))
    cv2.imwrite(str(tmp_path / "11_depthMap.png"), np.full((4, 6), 7, dtype=np.uint16))
    view_params = ViewParams(scene, tmp_path)

    assert view_params.depth_map_path(0).name == "10_depthMap.npy"
    assert view_params.load_depth_map(0).dtype == np.float32
    assert view_params.load_depth_map(0).shape == (4, 6)
    assert float(view_params.load_depth_map(1)[0, 0]) == 7.0
    assert not view_params.has_depth_map(2)
    assert view_params.load_depth_map(2) is None


def test_all_cameras_see_central_volume(scene):
    assert ViewParams(scene).cams_intersecting_hexahedron(UNIT_HEXAHEDRON) == [0, 1, 2, 3]


def test_volume_behind_cameras(scene):
    # Only the camera at -x (index 2) faces the +x side of the scene
    hexah = hexahedron_from_bounds([5.0, -0.1, -0.1], [5.2, 0.1, 0.1])
    assert ViewParams(scene).cams_intersecting_hexahedron(hexah) == [2]


def test_volume_around_camera_center(scene):
    hexah = hexahedron_from_bounds([3.5, -0.5, -0.5], [4.5, 0.5, 0.5])
    assert 0 in ViewParams(scene).cams_intersecting_hexahedron(hexah)


def test_volume_covering_whole_image(scene):
    # Every corner projects outside the image, the image is inside the volume footprint
    hexah = hexahedron_from_bounds([-30.0, -30.0, -30.0], [-20.0, 30.0, 30.0])
    assert 2 not in ViewParams(scene).cams_intersecting_hexahedron(hexah)
    assert 0 in ViewParams(scene).cams_intersecting_hexahedron(hexah)


def test_select_cameras_sfm_only_takes_all(scene):
    far = hexahedron_from_bounds([100.0, 100.0, 100.0], [101.0, 101.0, 101.0])
    view_params = ViewParams(scene)

    assert select_cameras(view_params, far, from_depth_maps=False) == [0, 1, 2, 3]
    assert select_cameras(view_params, far, from_depth_maps=True) == []
