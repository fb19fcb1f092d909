"""
geometry.py

Reconstruction volume helpers.

A hexahedron is an (8, 3) float array. Corners 0-3 are the bottom face in
order, 4-7 the top face with corner 4 above 0, 5 above 1 and so on. The
estimators in this project always produce parallelepipeds, so corner 0 and
the edges 0->1, 0->3, 0->4 fully describe the volume.
"""

import numpy as np

from errors import PreconditionError

VOLUME_EPS = 1e-12


def hexahedron_from_bounds(bmin, bmax) -> np.ndarray:
    x0, y0, z0 = (float(v) for v in bmin)
    x1, y1, z1 = (float(v) for v in bmax)
    return np.array(
        [
            [x0, y0, z0],
            [x1, y0, z0],
            [x1, y1, z0],
            [x0, y1, z0],
            [x0, y0, z1],
            [x1, y0, z1],
            [x1, y1, z1],
            [x0, y1, z1],
        ],
        dtype=np.float64,
    )


def _edges(hexah: np.ndarray):
    hexah = np.asarray(hexah, dtype=np.float64)
    return hexah[0], hexah[1] - hexah[0], hexah[3] - hexah[0], hexah[4] - hexah[0]


def hexahedron_volume(hexah) -> float:
    _, ex, ey, ez = _edges(hexah)
    return float(abs(np.dot(np.cross(ex, ey), ez)))


def check_hexahedron(hexah) -> np.ndarray:
    """Return the hexahedron as an (8, 3) array, raise if it can not bound anything."""
    hexah = np.asarray(hexah, dtype=np.float64)

    if hexah.shape != (8, 3):
        raise PreconditionError(f"Hexahedron must have 8 corners, got shape {hexah.shape}")

    if not np.all(np.isfinite(hexah)):
        raise PreconditionError("Hexahedron has non-finite corners")

    if hexahedron_volume(hexah) <= VOLUME_EPS:
        raise PreconditionError("Hexahedron is degenerate (zero volume)")

    return hexah


def points_in_hexahedron(hexah, points) -> np.ndarray:
    """Boolean mask of the points lying inside (or on) the hexahedron."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    origin, ex, ey, ez = _edges(hexah)

    basis = np.stack([ex, ey, ez], axis=1)
    local = np.linalg.solve(basis, (points - origin).T).T

    eps = 1e-9
    return np.all((local >= -eps) & (local <= 1.0 + eps), axis=1)


def hexahedron_center(hexah) -> np.ndarray:
    return np.asarray(hexah, dtype=np.float64).mean(axis=0)


def hexahedron_bounds(hexah):
    hexah = np.asarray(hexah, dtype=np.float64)
    return hexah.min(axis=0), hexah.max(axis=0)
