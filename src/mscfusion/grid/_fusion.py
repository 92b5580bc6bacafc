"""Depth fusion kernels: projective truncated signed distance + weighted running average.

Both entry points walk the flattened voxel index domain in fixed-size
blocks. ``fuse_sequential`` makes one pass per camera; ``fuse_batched``
makes a single pass and folds every camera into a block before writing
it back. The per-voxel arithmetic and the camera order are the same, so
the two agree exactly.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from mscfusion.core.cameras import CalibratedPosedDepthCamera
from mscfusion.utils.geometry import SimilarityTransform

logger = logging.getLogger(__name__)


def iter_blocks(num_voxels: int, block_size: int):
    for start in range(0, num_voxels, block_size):
        yield start, min(start + block_size, num_voxels)


def voxel_centers(
    shape: tuple[int, int, int], start: int, stop: int, world_from_grid: SimilarityTransform
) -> np.ndarray:
    """World-space centres of the flat (C-order) voxel range [start, stop)."""
    flat = np.arange(start, stop, dtype=np.int64)
    ijk = np.stack(np.unravel_index(flat, shape), axis=-1).astype(np.float64)
    return world_from_grid.transform_points(ijk + 0.5)


def observe(
    camera: CalibratedPosedDepthCamera,
    depth: np.ndarray,
    world_points: np.ndarray,
    max_truncation: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Truncated signed distance of each point as seen by ``camera``.

    Returns (sdf, valid). Points that project outside the depth buffer,
    outside the depth range, onto an invalid measurement, or lie more
    than ``max_truncation`` behind the measured surface are not valid.
    """
    fx, fy, cx, cy = camera.flpp
    d_min, d_max = camera.depth_min_max
    cfw = camera.camera_from_world
    rows, cols = depth.shape

    cam = world_points @ cfw[:3, :3].T + cfw[:3, 3]
    z = cam[:, 2]
    valid = (z > 0) & (z >= d_min) & (z <= d_max)

    with np.errstate(divide="ignore", invalid="ignore"):
        u = fx * cam[:, 0] / z + cx
        v = fy * cam[:, 1] / z + cy
    col = np.floor(np.where(valid, u, -1.0)).astype(np.int64)
    row = np.floor(np.where(valid, v, -1.0)).astype(np.int64)
    valid &= (col >= 0) & (col < cols) & (row >= 0) & (row < rows)

    measured = np.zeros(len(world_points), dtype=np.float64)
    measured[valid] = depth[row[valid], col[valid]]
    valid &= np.isfinite(measured) & (measured > 0) & (measured >= d_min) & (measured <= d_max)

    sdf = measured - z
    valid &= sdf >= -max_truncation
    return np.clip(np.where(valid, sdf, 0.0), -max_truncation, max_truncation), valid


def integrate(
    block_distance: np.ndarray,
    block_weight: np.ndarray,
    sdf: np.ndarray,
    valid: np.ndarray,
    sample_weight: float,
    max_weight: float,
    max_truncation: float,
) -> int:
    """Fold valid samples into a block of voxels in place. Returns the update count."""
    if not valid.any():
        return 0
    w_old = block_weight[valid].astype(np.float64)
    d_old = block_distance[valid].astype(np.float64)
    w_sum = w_old + sample_weight
    d_new = (w_old * d_old + sample_weight * sdf[valid]) / w_sum
    block_distance[valid] = np.clip(d_new, -max_truncation, max_truncation)
    block_weight[valid] = np.minimum(w_sum, max_weight)
    return int(valid.sum())


def fuse_sequential(
    distance: np.ndarray,
    weight: np.ndarray,
    cameras: Sequence[CalibratedPosedDepthCamera],
    depths: Sequence[np.ndarray],
    world_from_grid: SimilarityTransform,
    max_truncation: float,
    sample_weight: float,
    max_weight: float,
    block_size: int,
) -> int:
    """One full pass over the grid per camera."""
    flat_d = distance.reshape(-1)
    flat_w = weight.reshape(-1)
    updates = 0
    for camera, depth in zip(cameras, depths):
        for start, stop in iter_blocks(flat_d.size, block_size):
            centers = voxel_centers(distance.shape, start, stop, world_from_grid)
            sdf, valid = observe(camera, depth, centers, max_truncation)
            block_d = flat_d[start:stop]
            block_w = flat_w[start:stop]
            updates += integrate(
                block_d, block_w, sdf, valid, sample_weight, max_weight, max_truncation
            )
    return updates


def fuse_batched(
    distance: np.ndarray,
    weight: np.ndarray,
    cameras: Sequence[CalibratedPosedDepthCamera],
    depths: Sequence[np.ndarray],
    world_from_grid: SimilarityTransform,
    max_truncation: float,
    sample_weight: float,
    max_weight: float,
    block_size: int,
) -> int:
    """Single pass over the grid; every camera is folded into a block before it is written."""
    flat_d = distance.reshape(-1)
    flat_w = weight.reshape(-1)
    updates = 0
    for start, stop in iter_blocks(flat_d.size, block_size):
        centers = voxel_centers(distance.shape, start, stop, world_from_grid)
        block_d = flat_d[start:stop].copy()
        block_w = flat_w[start:stop].copy()
        for camera, depth in zip(cameras, depths):
            sdf, valid = observe(camera, depth, centers, max_truncation)
            updates += integrate(
                block_d, block_w, sdf, valid, sample_weight, max_weight, max_truncation
            )
        flat_d[start:stop] = block_d
        flat_w[start:stop] = block_w
    return updates
