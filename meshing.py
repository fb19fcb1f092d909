#!/usr/bin/env python3
"""
meshing.py

FUSECUT Meshing Stage
---------------------
- Resolves the meshing mode before touching the filesystem
- Reconstruction volume from SfM landmarks or depth maps
- Camera selection, dense fusion, surface extraction, post-processing
- Dense SfM scene (mesh vertices + projected observations) and triangle mesh
- Strictly sequential, one blocking call per engine
- Logger is injected; the CLI creates it once
"""

import argparse
import sys
import time
import traceback
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np

from config_manager import fuse_params, load_config, validate_config
from dense_scene import colorize_mesh, create_dense_scene, remove_landmarks_without_observations
from engines.base import DenseFusionEngine, SurfaceSolver, VolumeEstimator
from engines.fusion import DepthMapFusion
from engines.space import SpaceEstimator
from engines.surface import PoissonSurfaceSolver
from errors import MeshingError, PreconditionError
from geometry import check_hexahedron
from mesh import Mesh, save_as_triangle_mesh
from modes import MeshingMode, PartitioningMode, RepartitionMode, resolve_meshing_mode
from sfm.colorize import colorize_tracks
from sfm.data import Scene
from sfm.io import ESfMData, load_scene, save_scene
from utils.logger import get_logger, parse_verbose_level
from utils.paths import MeshingPaths
from view_params import ViewParams, select_cameras


# --------------------------------------------------
# Engines
# --------------------------------------------------
@dataclass
class MeshingEngines:
    volume_estimator: VolumeEstimator
    fusion: DenseFusionEngine
    surface: SurfaceSolver
    colorizer: Callable[[Scene], object]


def default_engines(view_params: ViewParams, config: dict, logger) -> MeshingEngines:
    surface_cfg = config["surface"]
    return MeshingEngines(
        volume_estimator=SpaceEstimator(config["meshing"]["universe_percentile"], logger=logger),
        fusion=DepthMapFusion(view_params, logger=logger),
        surface=PoissonSurfaceSolver(
            view_params,
            poisson_depth=surface_cfg["poisson_depth"],
            min_component_triangles=surface_cfg["min_component_triangles"],
            max_solver_points=surface_cfg["max_solver_points"],
            logger=logger,
        ),
        colorizer=partial(colorize_tracks, logger=logger),
    )


EngineFactory = Callable[[ViewParams, dict, object], MeshingEngines]


@dataclass
class MeshingResult:
    mesh_path: Path
    dense_path: Path
    raw_dense_path: Optional[Path]
    cameras: List[int]
    num_vertices: int
    num_triangles: int
    num_landmarks: int
    elapsed: float


# --------------------------------------------------
# Dense scene persistence
# --------------------------------------------------
def save_dense_point_cloud(
    scene: Scene,
    view_params: ViewParams,
    points: np.ndarray,
    visibilities,
    path: Path,
    colorizer: Optional[Callable] = None,
    mesh: Optional[Mesh] = None,
    logger=None,
) -> Scene:
    """
    Assemble, optionally colorize, prune and save a dense scene.

    When a mesh is given its vertex colors are filled before pruning so
    colors and vertices stay index-aligned.
    """
    dense = create_dense_scene(scene, view_params, points, visibilities)

    if colorizer is not None:
        colorizer(dense)
        if mesh is not None:
            colorize_mesh(mesh, dense)

    removed = remove_landmarks_without_observations(dense)
    if logger:
        logger.info(f"[meshing] Dense scene: {len(dense.landmarks):,} landmarks ({removed:,} without observation removed)")

    save_scene(dense, path, ESfMData.ALL_DENSE)
    if logger:
        logger.info(f"[meshing] Dense scene written: {path}")
    return dense


# --------------------------------------------------
# Single block, multi-resolution
# --------------------------------------------------
def _estimate_space(scene, view_params, mode: MeshingMode, config: dict, engines: MeshingEngines, logger):
    meshing_cfg = config["meshing"]

    if mode.from_depth_maps and not meshing_cfg["estimate_space_from_sfm"]:
        logger.info("[meshing] Estimating space from depth maps")
        hexah, min_pix_size = engines.volume_estimator.from_depth_maps(view_params, view_params.all_cameras())
        logger.info(f"[meshing] Min pixel size: {min_pix_size}")
    else:
        logger.info("[meshing] Estimating space from SfM")
        hexah = engines.volume_estimator.from_scene(
            scene,
            int(meshing_cfg["estimate_space_min_observations"]),
            float(meshing_cfg["estimate_space_min_observation_angle"]),
        )

    return check_hexahedron(hexah)


def _mesh_single_block(
    scene: Scene,
    view_params: ViewParams,
    mode: MeshingMode,
    config: dict,
    engines: MeshingEngines,
    paths: MeshingPaths,
    logger,
):
    meshing_cfg = config["meshing"]
    output_cfg = config["output"]
    colorizer = engines.colorizer if output_cfg["colorize"] else None

    logger.info(f"[meshing] Meshing mode: {mode.description}")

    hexah = _estimate_space(scene, view_params, mode, config, engines, logger)

    cams = select_cameras(view_params, hexah, mode.from_depth_maps)
    if not cams:
        raise PreconditionError("No camera to make the reconstruction")
    logger.info(f"[meshing] {len(cams)}/{view_params.nb_cameras} cameras selected")

    t0 = time.time()
    fused = engines.fusion.fuse(
        hexah,
        cams,
        fuse_params(config) if mode.from_depth_maps else None,
        scene if mode.add_landmarks else None,
    )
    logger.info(f"[meshing] Dense fusion: {len(fused):,} points in {time.time() - t0:.2f}s")

    raw_path = None
    if output_cfg["save_raw_dense_point_cloud"]:
        logger.info("[meshing] Save dense point cloud before cut and filtering")
        raw_path = paths.raw_dense
        save_dense_point_cloud(
            scene, view_params, fused.points, fused.visibilities, raw_path, colorizer=colorizer, logger=logger
        )

    t0 = time.time()
    engines.surface.build_and_cut(
        hexah,
        cams,
        fused,
        t_edge_delta=float(meshing_cfg["force_t_edge_delta"]),
        seed=int(meshing_cfg["seed"]),
    )
    engines.surface.post_process(hexah)
    mesh = engines.surface.extract_mesh()
    visibilities = engines.surface.visibility_per_vertex()
    logger.info(f"[meshing] Surface extraction done in {time.time() - t0:.2f}s")

    return cams, mesh, visibilities, raw_path


# --------------------------------------------------
# PIPELINE STAGE
# --------------------------------------------------
def run(
    input_sfm: Path,
    output_dense: Path,
    output_mesh: Path,
    config: dict,
    logger,
    depth_maps_folder: Optional[Path] = None,
    engine_factory: EngineFactory = default_engines,
) -> MeshingResult:
    start = time.time()
    meshing_cfg = config["meshing"]
    depth_maps_folder = optional_path(depth_maps_folder)

    validate_config(config, logger)

    mode = resolve_meshing_mode(
        PartitioningMode.from_string(meshing_cfg["partitioning"]),
        RepartitionMode.from_string(meshing_cfg["repartition"]),
        depth_maps_folder,
        meshing_cfg["add_landmarks_to_dense_point_cloud"],
    )

    paths = MeshingPaths(input_sfm, output_dense, output_mesh)
    paths.validate()

    logger.info("[meshing] Stage started")
    logger.info(f"[meshing] Input       : {paths.input_sfm}")
    logger.info(f"[meshing] Depth maps  : {depth_maps_folder or '-'}")
    logger.info(f"[meshing] Dense output: {paths.output_dense}")
    logger.info(f"[meshing] Mesh output : {paths.output_mesh}")
    for section, values in config.items():
        logger.debug(f"[meshing] {section}: {values}")

    scene = load_scene(paths.input_sfm, ESfMData.ALL)
    logger.info(
        f"[meshing] Scene: {len(scene.views)} views, {len(scene.poses)} poses, {len(scene.landmarks):,} landmarks"
    )

    view_params = ViewParams(scene, depth_maps_folder, read_depth_maps=mode.from_depth_maps)
    paths.ensure_all()

    engines = engine_factory(view_params, config, logger)
    try:
        cams, mesh, visibilities, raw_path = _mesh_single_block(
            scene, view_params, mode, config, engines, paths, logger
        )

        if mesh is None or mesh.is_empty():
            raise PreconditionError("No valid mesh was generated.")

        if not visibilities:
            raise PreconditionError("Points visibilities data has not been initialized.")

        if len(visibilities) != mesh.num_vertices:
            raise PreconditionError(
                f"Points visibilities ({len(visibilities)}) do not match mesh vertices ({mesh.num_vertices})"
            )

        colorizer = engines.colorizer if config["output"]["colorize"] else None
        dense = save_dense_point_cloud(
            scene,
            view_params,
            mesh.points,
            visibilities,
            paths.output_dense,
            colorizer=colorizer,
            mesh=mesh,
            logger=logger,
        )

        save_as_triangle_mesh(mesh, paths.output_mesh, logger=logger)

    except Exception:
        logger.error("[meshing] FAILED")
        logger.error(traceback.format_exc())
        raise

    finally:
        engines.surface.release()

    elapsed = time.time() - start
    logger.info(f"[meshing] Task done in (s): {elapsed:.2f}")

    return MeshingResult(
        mesh_path=paths.output_mesh,
        dense_path=paths.output_dense,
        raw_dense_path=raw_path,
        cameras=cams,
        num_vertices=mesh.num_vertices,
        num_triangles=mesh.num_triangles,
        num_landmarks=len(dense.landmarks),
        elapsed=elapsed,
    )


# --------------------------------------------------
# CLI
# --------------------------------------------------
def optional_path(value) -> Optional[Path]:
    """Path from a CLI or config value; empty or blank means no path."""
    if value is None or not str(value).strip():
        return None
    return Path(value)


def _str2bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise argparse.ArgumentTypeError(f"Expected a boolean, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FUSECUT Meshing: dense point cloud + mesh from an SfM scene")

    required = parser.add_argument_group("Required parameters")
    required.add_argument("-i", "--input", type=Path, required=True, help="SfM scene file (.sfm/.json)")
    required.add_argument("-o", "--output", type=Path, required=True, help="Output dense scene (.sfm/.json/.ply)")
    required.add_argument("--output_mesh", type=Path, required=True, help="Output mesh (.obj/.ply)")

    optional = parser.add_argument_group("Optional parameters")
    optional.add_argument(
        "--depth_maps_folder",
        type=optional_path,
        help="Filtered depth maps folder (empty: mesh from SfM landmarks)",
    )
    optional.add_argument("--config", type=Path, help="YAML overrides of the default configuration")
    optional.add_argument("--partitioning", help="'singleBlock' or 'auto'")
    optional.add_argument("--repartition", help="'multiResolution'")
    optional.add_argument("--estimate_space_from_sfm", type=_str2bool, help="Estimate the 3D space from the SfM")
    optional.add_argument(
        "--add_landmarks_to_dense_point_cloud",
        type=_str2bool,
        help="Add SfM landmarks to the dense point cloud (forced when no depth maps are given)",
    )
    optional.add_argument("--colorize_output", type=_str2bool, help="Colorize the dense point cloud and mesh")
    optional.add_argument("--max_input_points", type=int, help="Max input points loaded from depth maps")
    optional.add_argument("--max_points", type=int, help="Max points at the end of the depth maps fusion")
    optional.add_argument("--min_step", type=int, help="Minimal step used to load depth values")
    optional.add_argument("--sim_factor", type=float)
    optional.add_argument("--angle_factor", type=float)

    advanced = parser.add_argument_group("Advanced parameters")
    advanced.add_argument("--universe_percentile", type=float)
    advanced.add_argument("--estimate_space_min_observations", type=int, help="Min observations for SfM space estimation")
    advanced.add_argument(
        "--estimate_space_min_observation_angle", type=float, help="Min angle (deg) between two observations"
    )
    advanced.add_argument("--pix_size_margin_init_coef", type=float)
    advanced.add_argument("--pix_size_margin_final_coef", type=float)
    advanced.add_argument("--vote_margin_factor", type=float)
    advanced.add_argument("--contribute_margin_factor", type=float)
    advanced.add_argument("--sim_gaussian_size_init", type=float)
    advanced.add_argument("--sim_gaussian_size", type=float)
    advanced.add_argument("--min_angle_threshold", type=float)
    advanced.add_argument("--refine_fuse", type=_str2bool)
    advanced.add_argument("--save_raw_dense_point_cloud", type=_str2bool, help="Save dense point cloud before cut")
    advanced.add_argument("--force_t_edge_delta", type=float, help="0 to disable. Emptiness/fullness threshold")
    advanced.add_argument("--seed", type=int, help="Seed for random processes (0 for a random seed)")

    log = parser.add_argument_group("Log parameters")
    log.add_argument("-v", "--verbose_level", default="info", help="fatal, error, warning, info, debug, trace")
    log.add_argument("--log_dir", type=Path, help="Directory for meshing.log")

    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    return {
        "meshing": {
            "partitioning": args.partitioning,
            "repartition": args.repartition,
            "estimate_space_from_sfm": args.estimate_space_from_sfm,
            "estimate_space_min_observations": args.estimate_space_min_observations,
            "estimate_space_min_observation_angle": args.estimate_space_min_observation_angle,
            "universe_percentile": args.universe_percentile,
            "add_landmarks_to_dense_point_cloud": args.add_landmarks_to_dense_point_cloud,
            "force_t_edge_delta": args.force_t_edge_delta,
            "seed": args.seed,
        },
        "fuse": {
            "max_input_points": args.max_input_points,
            "max_points": args.max_points,
            "min_step": args.min_step,
            "sim_factor": args.sim_factor,
            "angle_factor": args.angle_factor,
            "pix_size_margin_init_coef": args.pix_size_margin_init_coef,
            "pix_size_margin_final_coef": args.pix_size_margin_final_coef,
            "vote_margin_factor": args.vote_margin_factor,
            "contribute_margin_factor": args.contribute_margin_factor,
            "sim_gaussian_size_init": args.sim_gaussian_size_init,
            "sim_gaussian_size": args.sim_gaussian_size,
            "min_angle_threshold": args.min_angle_threshold,
            "refine_fuse": args.refine_fuse,
        },
        "output": {
            "colorize": args.colorize_output,
            "save_raw_dense_point_cloud": args.save_raw_dense_point_cloud,
        },
    }


def main(argv=None, engine_factory: EngineFactory = default_engines) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        level = parse_verbose_level(args.verbose_level)
    except ValueError as exc:
        parser.error(str(exc))

    logger = get_logger(args.output_mesh.stem, log_dir=args.log_dir, level=level)

    try:
        config = load_config(args.config, overrides_from_args(args), logger=logger)
        run(
            args.input,
            args.output,
            args.output_mesh,
            config,
            logger,
            depth_maps_folder=args.depth_maps_folder,
            engine_factory=engine_factory,
        )
    except KeyboardInterrupt:
        logger.error("Meshing interrupted by user")
        return 130
    except MeshingError as exc:
        logger.error(f"Meshing failed: {exc}")
        return 1
    except Exception as exc:
        logger.error(f"Meshing failed with an unexpected error: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
