"""Write a TriangleMesh to disk with trimesh."""

from __future__ import annotations

import logging
from pathlib import Path

from mscfusion.grid.mesh import TriangleMesh

logger = logging.getLogger(__name__)


def write_mesh(mesh: TriangleMesh, output_path: Path, file_type: str = "ply") -> Path:
    """Export ``mesh`` (positions, vertex normals, faces) as PLY, GLB or OBJ."""
    import trimesh

    tm = trimesh.Trimesh(
        vertices=mesh.positions,
        faces=mesh.faces,
        vertex_normals=mesh.normals,
        process=False,
    )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tm.export(str(output_path), file_type=file_type)

    size_mb = output_path.stat().st_size / (1024 * 1024)
    logger.info(
        f"Mesh exported: {output_path} ({size_mb:.2f} MB, "
        f"{mesh.num_vertices} vertices, {mesh.num_faces} faces)"
    )
    return output_path
