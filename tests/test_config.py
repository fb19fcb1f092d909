import logging

import pytest
import yaml

from config_manager import BASE_CONFIG, fuse_params, load_config, validate_config
from errors import ConfigurationError
from utils.logger import get_logger, parse_verbose_level
from utils.paths import MeshingPaths


def test_defaults():
    config = load_config()

    assert config == BASE_CONFIG
    assert config is not BASE_CONFIG
    assert config["meshing"]["universe_percentile"] == 0.999
    assert config["fuse"]["max_points"] == 5_000_000
    assert validate_config(config)


def test_yaml_then_overrides(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"fuse": {"min_step": 4, "max_points": 100}}), encoding="utf-8")

    config = load_config(path, overrides={"fuse": {"max_points": 50, "min_step": None}})

    assert config["fuse"]["min_step"] == 4
    assert config["fuse"]["max_points"] == 50
    assert BASE_CONFIG["fuse"]["max_points"] == 5_000_000


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("meshing:\n  partition: auto\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="meshing.partition"):
        load_config(path)


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "section, key, value",
    [
        ("meshing", "universe_percentile", 0.0),
        ("meshing", "universe_percentile", 1.5),
        ("meshing", "force_t_edge_delta", 1.0),
        ("meshing", "seed", -1),
        ("meshing", "estimate_space_min_observation_angle", -5.0),
        ("fuse", "max_points", 0),
        ("surface", "poisson_depth", 0),
    ],
)
def test_invalid_values(section, key, value):
    config = load_config(overrides={section: {key: value}})
    with pytest.raises(ConfigurationError):
        validate_config(config)


def test_fuse_params_is_a_copy():
    config = load_config()
    params = fuse_params(config)
    params["max_points"] = 1

    assert config["fuse"]["max_points"] == 5_000_000


@pytest.mark.parametrize("name, level", [("trace", logging.DEBUG), ("Warning", logging.WARNING), ("fatal", logging.CRITICAL)])
def test_verbose_levels(name, level):
    assert parse_verbose_level(name) == level


def test_unknown_verbose_level():
    with pytest.raises(ValueError):
        parse_verbose_level("chatty")


def test_logger_writes_file_once(tmp_path):
    logger = get_logger("config-test", log_dir=tmp_path, level=logging.INFO)
    again = get_logger("config-test", log_dir=tmp_path, level=logging.DEBUG)
    logger.info("[test] hello")

    assert again is logger
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2
    for handler in logger.handlers:
        handler.flush()
    assert "[INFO] [test] hello" in (tmp_path / "meshing.log").read_text(encoding="utf-8")


def test_paths_layout(tmp_path):
    source = tmp_path / "scene.sfm"
    source.write_text("{}", encoding="utf-8")
    paths = MeshingPaths(source, tmp_path / "dense" / "cloud.ply", tmp_path / "mesh" / "mesh.obj")

    paths.validate()
    paths.ensure_all()

    assert paths.out_dir == (tmp_path / "mesh").resolve()
    assert paths.raw_dense.name == "densePointCloud_raw.ply"
    assert (tmp_path / "dense").is_dir()


@pytest.mark.parametrize("dense, mesh", [("cloud.txt", "mesh.obj"), ("cloud.sfm", "mesh.xyz"), ("same.ply", "same.ply")])
def test_paths_reject_bad_outputs(tmp_path, dense, mesh):
    source = tmp_path / "scene.sfm"
    source.write_text("{}", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        MeshingPaths(source, tmp_path / dense, tmp_path / mesh).validate()
