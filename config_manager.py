#!/usr/bin/env python3
"""
config_manager.py

FUSECUT Meshing Configuration Manager
-------------------------------------
- BASE_CONFIG holds every documented default
- Optional config.yaml is deep-merged on top
- CLI overrides are applied last
- Validation fails fast with ConfigurationError

LOGGER POLICY:
- Logger is injected by the entry point
- This module NEVER creates its own logger
"""

from pathlib import Path
from copy import deepcopy
import yaml

from errors import ConfigurationError


# =================================================
# BASELINE CONFIG
# =================================================

BASE_CONFIG = {
    "meshing": {
        "partitioning": "singleBlock",
        "repartition": "multiResolution",
        "estimate_space_from_sfm": True,
        "estimate_space_min_observations": 3,
        "estimate_space_min_observation_angle": 10.0,
        "universe_percentile": 0.999,
        "add_landmarks_to_dense_point_cloud": False,
        "force_t_edge_delta": 0.1,
        "seed": 0,
    },

    # Pass-through knobs of the dense fusion engine
    "fuse": {
        "max_input_points": 50_000_000,
        "max_points": 5_000_000,
        "min_step": 2,
        "sim_factor": 15.0,
        "angle_factor": 15.0,
        "pix_size_margin_init_coef": 2.0,
        "pix_size_margin_final_coef": 4.0,
        "vote_margin_factor": 4.0,
        "contribute_margin_factor": 2.0,
        "sim_gaussian_size_init": 10.0,
        "sim_gaussian_size": 10.0,
        "min_angle_threshold": 1.0,
        "refine_fuse": True,
    },

    "surface": {
        "poisson_depth": 9,
        "min_component_triangles": 10,
        "max_solver_points": 2_000_000,
    },

    "output": {
        "colorize": False,
        "save_raw_dense_point_cloud": False,
    },
}


def _deep_merge(base: dict, override: dict, where: str = "") -> dict:
    for key, value in override.items():
        if key not in base:
            raise ConfigurationError(f"Unknown configuration key: {where}{key}")

        if isinstance(base[key], dict):
            if not isinstance(value, dict):
                raise ConfigurationError(f"Configuration section {where}{key} must be a mapping")
            _deep_merge(base[key], value, where=f"{where}{key}.")
        else:
            base[key] = value

    return base


def load_config(config_path: Path | None = None, overrides: dict | None = None, logger=None) -> dict:
    """
    Build the effective configuration.

    Precedence: BASE_CONFIG < config.yaml < overrides.
    Override values that are None are ignored (unset CLI options).
    """
    config = deepcopy(BASE_CONFIG)

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Missing config file: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            user_cfg = yaml.safe_load(f) or {}

        if not isinstance(user_cfg, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_path}")

        _deep_merge(config, user_cfg)
        if logger:
            logger.info(f"[config] Loaded overrides from {config_path}")

    if overrides:
        cleaned = {
            section: {k: v for k, v in values.items() if v is not None}
            for section, values in overrides.items()
        }
        _deep_merge(config, cleaned)

    return config


# =================================================
# VALIDATION
# =================================================

def validate_config(config: dict, logger=None) -> bool:
    missing = set(BASE_CONFIG) - config.keys()
    if missing:
        raise ConfigurationError(f"Missing required sections: {sorted(missing)}")

    meshing = config["meshing"]
    fuse = config["fuse"]
    surface = config["surface"]

    if int(meshing["estimate_space_min_observations"]) < 0:
        raise ConfigurationError("estimate_space_min_observations must be >= 0")

    if float(meshing["estimate_space_min_observation_angle"]) < 0.0:
        raise ConfigurationError("estimate_space_min_observation_angle must be >= 0 degrees")

    if not 0.0 < float(meshing["universe_percentile"]) <= 1.0:
        raise ConfigurationError("universe_percentile must be in (0, 1]")

    if not 0.0 <= float(meshing["force_t_edge_delta"]) < 1.0:
        raise ConfigurationError("force_t_edge_delta must be in [0, 1) (0 disables)")

    if int(meshing["seed"]) < 0:
        raise ConfigurationError("seed must be >= 0 (0 for a random seed)")

    for key in ("max_input_points", "max_points", "min_step"):
        if int(fuse[key]) <= 0:
            raise ConfigurationError(f"fuse.{key} must be > 0")

    if int(surface["poisson_depth"]) < 1:
        raise ConfigurationError("surface.poisson_depth must be >= 1")

    if logger:
        logger.info("[config] Configuration validation passed")
    return True


def fuse_params(config: dict) -> dict:
    """Copy of the fusion knobs, handed to the fusion engine untouched."""
    return dict(config["fuse"])
