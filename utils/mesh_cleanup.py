#!/usr/bin/env python3
"""
mesh_cleanup.py

FUSECUT Mesh Post-Processing
----------------------------
- Deterministic topological cleanup (degenerate, duplicated, non-manifold)
- Crop to the reconstruction hexahedron
- Small disconnected component removal
- Returns a report dict, the caller decides what to log or persist
"""

from typing import Dict, Tuple

import numpy as np
import open3d as o3d

from geometry import points_in_hexahedron


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def topological_cleanup(mesh: o3d.geometry.TriangleMesh) -> o3d.geometry.TriangleMesh:
    mesh.remove_degenerate_triangles()
    mesh.remove_duplicated_triangles()
    mesh.remove_duplicated_vertices()
    mesh.remove_non_manifold_edges()
    mesh.remove_unreferenced_vertices()
    return mesh


def crop_to_hexahedron(mesh: o3d.geometry.TriangleMesh, hexah) -> int:
    """Remove every vertex (and its triangles) outside the hexahedron. Returns removed count."""
    if not mesh.has_vertices():
        return 0

    outside = ~points_in_hexahedron(hexah, np.asarray(mesh.vertices))
    removed = int(outside.sum())
    if removed:
        mesh.remove_vertices_by_mask(outside)
    return removed


def remove_small_components(mesh: o3d.geometry.TriangleMesh, min_triangles: int) -> int:
    if min_triangles <= 1 or not mesh.has_triangles():
        return 0

    tri_clusters, cluster_n_tris, _ = mesh.cluster_connected_triangles()
    tri_clusters = np.asarray(tri_clusters)
    cluster_n_tris = np.asarray(cluster_n_tris)

    remove = np.flatnonzero(cluster_n_tris[tri_clusters] < min_triangles)
    if len(remove):
        mesh.remove_triangles_by_index(remove.tolist())
        mesh.remove_unreferenced_vertices()
    return int(len(remove))


# ------------------------------------------------------------
# Main entry
# ------------------------------------------------------------

def cleanup_mesh(
    mesh: o3d.geometry.TriangleMesh,
    hexah,
    min_component_triangles: int = 10,
    logger=None,
) -> Tuple[o3d.geometry.TriangleMesh, Dict]:
    report = {
        "input_vertices": len(mesh.vertices),
        "input_triangles": len(mesh.triangles),
    }

    topological_cleanup(mesh)
    report["after_topology_triangles"] = len(mesh.triangles)

    report["cropped_vertices"] = crop_to_hexahedron(mesh, hexah)
    report["removed_component_triangles"] = remove_small_components(mesh, min_component_triangles)

    # Cropping can leave slivers behind
    mesh.remove_degenerate_triangles()
    mesh.remove_unreferenced_vertices()

    report.update({
        "output_vertices": len(mesh.vertices),
        "output_triangles": len(mesh.triangles),
        "min_component_triangles": int(min_component_triangles),
    })

    if logger:
        logger.info(
            f"[mesh_cleanup] {report['input_triangles']:,} -> {report['output_triangles']:,} triangles "
            f"(cropped {report['cropped_vertices']:,} vertices, "
            f"removed {report['removed_component_triangles']:,} small-component triangles)"
        )

    return mesh, report
