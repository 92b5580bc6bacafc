"""Triangle mesh value returned by isosurface extraction."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from mscfusion.utils.geometry import transform_normals, transform_points


@dataclass
class TriangleMesh:
    """Indexed triangle mesh with per-vertex normals."""

    positions: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))  # (V, 3) float64
    normals: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))  # (V, 3) float64
    faces: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.int64))  # (F, 3)

    @property
    def num_vertices(self) -> int:
        return len(self.positions)

    @property
    def num_faces(self) -> int:
        return len(self.faces)

    def is_empty(self) -> bool:
        return self.num_vertices == 0

    def transformed(self, matrix: np.ndarray) -> "TriangleMesh":
        """New mesh with ``matrix`` applied to positions and its normal matrix to normals."""
        return TriangleMesh(
            positions=transform_points(matrix, self.positions),
            normals=transform_normals(matrix, self.normals),
            faces=self.faces.copy(),
        )
