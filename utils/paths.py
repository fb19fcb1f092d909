from pathlib import Path

from errors import ConfigurationError, SceneIOError


RAW_DENSE_STEM = "densePointCloud_raw"
DENSE_SCENE_EXTS = {".sfm", ".json", ".ply"}
MESH_EXTS = {".obj", ".ply", ".stl", ".off", ".gltf", ".glb"}


class MeshingPaths:
    """
    FUSECUT output layout for one meshing invocation.

    This class is the SINGLE authority for where the run writes:

        <out_dir>/                   parent of the output mesh
        <out_dir>/<mesh>             triangle mesh
        <dense scene>                caller-chosen, may live elsewhere
        <out_dir>/densePointCloud_raw.<ext>   optional raw snapshot
    """

    def __init__(self, input_sfm: Path, output_dense: Path, output_mesh: Path):
        self.input_sfm = Path(input_sfm).resolve()
        self.output_dense = Path(output_dense).resolve()
        self.output_mesh = Path(output_mesh).resolve()

        self.out_dir = self.output_mesh.parent

        # Raw snapshot shares the dense output format
        self.raw_dense = self.out_dir / f"{RAW_DENSE_STEM}{self.output_dense.suffix}"

    # ------------------------------------------------------------------
    def validate(self):
        if not self.input_sfm.exists():
            raise SceneIOError(f"Input SfM file not found: {self.input_sfm}", self.input_sfm)

        if self.output_dense.suffix.lower() not in DENSE_SCENE_EXTS:
            raise ConfigurationError(
                f"Unsupported dense scene format '{self.output_dense.suffix}' "
                f"(expected one of {sorted(DENSE_SCENE_EXTS)})"
            )

        if self.output_mesh.suffix.lower() not in MESH_EXTS:
            raise ConfigurationError(
                f"Unsupported mesh format '{self.output_mesh.suffix}' "
                f"(expected one of {sorted(MESH_EXTS)})"
            )

        if self.output_dense == self.output_mesh:
            raise ConfigurationError("Dense scene and mesh outputs must be different files")

    # ------------------------------------------------------------------
    def ensure_all(self):
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.output_dense.parent.mkdir(parents=True, exist_ok=True)

    def __repr__(self):
        return f"MeshingPaths(out_dir={self.out_dir}, mesh={self.output_mesh.name}, dense={self.output_dense})"
