"""Zero level-set extraction with marching cubes (scikit-image)."""

from __future__ import annotations

import logging

import numpy as np
from skimage import measure

from mscfusion.utils.geometry import SimilarityTransform
from ._sampling import gradient_field, sample_normals
from .mesh import TriangleMesh

logger = logging.getLogger(__name__)


def _observed_cubes(weight: np.ndarray) -> np.ndarray:
    """Mask of cubes whose eight corners are observed.

    Each cube is keyed by its upper corner, which is where
    ``measure.marching_cubes`` reads the mask.
    """
    observed = weight > 0
    mask = np.zeros_like(observed)
    nx, ny, nz = observed.shape
    if min(nx, ny, nz) < 2:
        return mask
    cube = np.ones((nx - 1, ny - 1, nz - 1), dtype=bool)
    for i in (0, 1):
        for j in (0, 1):
            for k in (0, 1):
                cube &= observed[i:nx - 1 + i, j:ny - 1 + j, k:nz - 1 + k]
    mask[1:, 1:, 1:] = cube
    return mask


def _has_crossing(distance: np.ndarray, cubes: np.ndarray) -> bool:
    """True if any masked cube has corners on both sides of zero."""
    nx, ny, nz = distance.shape
    if not cubes.any():
        return False
    lo = np.full((nx - 1, ny - 1, nz - 1), np.inf, dtype=np.float32)
    hi = np.full((nx - 1, ny - 1, nz - 1), -np.inf, dtype=np.float32)
    for i in (0, 1):
        for j in (0, 1):
            for k in (0, 1):
                corner = distance[i:nx - 1 + i, j:ny - 1 + j, k:nz - 1 + k]
                np.minimum(lo, corner, out=lo)
                np.maximum(hi, corner, out=hi)
    inner = cubes[1:, 1:, 1:]
    # marching cubes classifies corners as "< level" vs ">= level"
    return bool(np.any(inner & (lo < 0) & (hi >= 0)))


def extract_mesh(
    distance: np.ndarray, weight: np.ndarray, world_from_grid: SimilarityTransform
) -> TriangleMesh:
    """World-space mesh of the observed zero crossing of the distance field."""
    cubes = _observed_cubes(weight)
    if not _has_crossing(distance, cubes):
        logger.debug("No observed zero crossing; returning an empty mesh")
        return TriangleMesh()

    try:
        verts, faces, _normals, _values = measure.marching_cubes(
            distance.astype(np.float32), level=0.0, mask=cubes, allow_degenerate=False
        )
    except RuntimeError as e:
        # ties at exactly zero may be classified differently by skimage
        logger.debug(f"Marching cubes found no surface ({e}); returning an empty mesh")
        return TriangleMesh()
    if len(verts) == 0 or len(faces) == 0:
        logger.debug("Marching cubes produced no faces; returning an empty mesh")
        return TriangleMesh()
    grid_points = verts.astype(np.float64) + 0.5
    grid_normals = sample_normals(gradient_field(distance), grid_points)

    positions = world_from_grid.transform_points(grid_points)
    normals = grid_normals @ world_from_grid.rotation.T
    logger.debug(f"Marching cubes: {len(positions)} vertices, {len(faces)} faces")
    return TriangleMesh(positions=positions, normals=normals, faces=faces.astype(np.int64))
