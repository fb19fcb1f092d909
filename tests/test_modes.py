import pytest

from errors import ConfigurationError, UnimplementedModeError
from modes import MeshingMode, PartitioningMode, RepartitionMode, resolve_meshing_mode

SINGLE = PartitioningMode.SINGLE_BLOCK
AUTO = PartitioningMode.AUTO
MULTI = RepartitionMode.MULTI_RESOLUTION


@pytest.mark.parametrize(
    "value, expected",
    [
        ("singleBlock", SINGLE),
        ("auto", AUTO),
        ("SingleBlock", PartitioningMode.UNDEFINED),
        ("", PartitioningMode.UNDEFINED),
    ],
)
def test_partitioning_from_string(value, expected):
    assert PartitioningMode.from_string(value) is expected


def test_repartition_from_string():
    assert RepartitionMode.from_string("multiResolution") is MULTI
    assert RepartitionMode.from_string("regularGrid") is RepartitionMode.UNDEFINED


def test_depth_maps_single_block():
    mode = resolve_meshing_mode(SINGLE, MULTI, "/data/depth")
    assert mode == MeshingMode(from_depth_maps=True, add_landmarks=False)


def test_depth_maps_with_landmarks():
    mode = resolve_meshing_mode(SINGLE, MULTI, "/data/depth", add_landmarks=True)
    assert mode.from_depth_maps and mode.add_landmarks
    assert "SfM landmarks" in mode.description


@pytest.mark.parametrize("folder", [None, ""])
def test_sfm_only_forces_landmarks(folder):
    mode = resolve_meshing_mode(SINGLE, MULTI, folder, add_landmarks=False)
    assert mode == MeshingMode(from_depth_maps=False, add_landmarks=True)
    assert "SfM only" in mode.description


def test_auto_is_not_implemented():
    with pytest.raises(UnimplementedModeError):
        resolve_meshing_mode(AUTO, MULTI, "/data/depth")


@pytest.mark.parametrize(
    "partitioning, repartition",
    [
        (AUTO, MULTI),
        (PartitioningMode.UNDEFINED, MULTI),
        (SINGLE, RepartitionMode.UNDEFINED),
    ],
)
def test_sfm_only_requires_single_block_multi_resolution(partitioning, repartition):
    with pytest.raises(ConfigurationError, match="Invalid input options"):
        resolve_meshing_mode(partitioning, repartition, None)


def test_undefined_modes_with_depth_maps():
    with pytest.raises(ConfigurationError, match="Partitioning mode is not defined"):
        resolve_meshing_mode(PartitioningMode.UNDEFINED, MULTI, "/data/depth")

    with pytest.raises(ConfigurationError, match="Repartition mode is not defined"):
        resolve_meshing_mode(SINGLE, RepartitionMode.UNDEFINED, "/data/depth")
