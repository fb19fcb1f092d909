"""
errors.py

FUSECUT error taxonomy
----------------------
Every failure surfaced by the meshing pipeline derives from MeshingError so
the CLI can map it to a non-zero exit code with a readable message.
"""


class MeshingError(RuntimeError):
    pass


class ConfigurationError(MeshingError):
    """Unsupported mode combination, missing inputs or invalid option values."""


class UnimplementedModeError(ConfigurationError):
    pass


class PreconditionError(MeshingError):
    """A stage produced nothing usable for the next one (no cameras, empty mesh...)."""


class SceneIOError(MeshingError, OSError):
    """Reading or writing a scene, depth map or mesh failed."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path
