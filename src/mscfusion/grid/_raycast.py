"""Ray marching through the TSDF: fixed-step and adaptive (empty-space skipping).

Rays are marched in grid space with t measured in voxels. A surface is
the first valid positive sample followed by a valid non-positive one;
the hit is refined by linear interpolation between the two samples.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from mscfusion.utils.geometry import Box3, SimilarityTransform, intersect_rays_box
from ._sampling import sample_normals, sample_tsdf
from .config import RaycastConfig, RaycastMode

logger = logging.getLogger(__name__)


@dataclass
class RaycastImage:
    """Pixel-aligned world-space hit positions and normals.

    ``positions[..., 3]`` is 1 on hits and 0 otherwise; missed pixels are
    all-zero in both buffers. A hit with a degenerate gradient has a zero
    normal.
    """

    positions: np.ndarray  # (H, W, 4) float32
    normals: np.ndarray  # (H, W, 4) float32
    num_samples: int = 0

    @property
    def hit_mask(self) -> np.ndarray:
        return self.positions[..., 3] > 0

    @property
    def num_hits(self) -> int:
        return int(self.hit_mask.sum())


def generate_rays(flpp, world_from_camera: np.ndarray, width: int, height: int):
    """World-space origins and unit directions through every pixel centre, row-major."""
    fx, fy, cx, cy = flpp
    cols, rows = np.meshgrid(np.arange(width) + 0.5, np.arange(height) + 0.5)
    dirs = np.stack(
        [(cols.ravel() - cx) / fx, (rows.ravel() - cy) / fy, np.ones(width * height)], axis=-1
    )
    dirs /= np.linalg.norm(dirs, axis=-1, keepdims=True)
    wfc = np.asarray(world_from_camera, dtype=np.float64)
    directions = dirs @ wfc[:3, :3].T
    origins = np.broadcast_to(wfc[:3, 3], directions.shape).copy()
    return origins, directions


def march(
    distance: np.ndarray,
    weight: np.ndarray,
    gradient: np.ndarray,
    world_from_grid: SimilarityTransform,
    origins: np.ndarray,
    directions: np.ndarray,
    max_truncation: float,
    mode: RaycastMode,
    config: RaycastConfig,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, int]:
    """March (N, 3) world rays. Returns (hit, world_points, world_normals, samples)."""
    n = len(origins)
    grid_from_world = world_from_grid.inverse()
    o = grid_from_world.transform_points(origins)
    d = grid_from_world.transform_vectors(directions)
    d /= np.linalg.norm(d, axis=-1, keepdims=True)

    box = Box3(np.zeros(3), np.asarray(distance.shape, dtype=np.float64))
    t_near, t_far, enters = intersect_rays_box(o, d, box)

    # distances are stored in world units; steps are in voxels
    to_voxels = 1.0 / world_from_grid.scale
    trunc_vox = max_truncation * to_voxels
    if mode == RaycastMode.ADAPTIVE:
        smallest = min(config.min_step, config.step_size)
    else:
        smallest = config.step_size
    span = float(np.max(t_far[enters] - t_near[enters])) if enters.any() else 0.0
    max_iter = int(np.ceil(span / smallest)) + 2

    t = t_near.copy()
    prev_t = np.zeros(n)
    prev_d = np.zeros(n)
    prev_ok = np.zeros(n, dtype=bool)
    hit = np.zeros(n, dtype=bool)
    hit_t = np.zeros(n)
    active = enters.copy()
    samples = 0

    for _ in range(max_iter):
        idx = np.nonzero(active)[0]
        if len(idx) == 0:
            break
        p = o[idx] + t[idx, None] * d[idx]
        values, ok = sample_tsdf(distance, weight, p)
        samples += len(idx)

        crossing = prev_ok[idx] & (prev_d[idx] > 0) & ok & (values <= 0)
        if crossing.any():
            ci = idx[crossing]
            t0, d0 = prev_t[ci], prev_d[ci]
            hit_t[ci] = t0 + (t[ci] - t0) * d0 / (d0 - values[crossing])
            hit[ci] = True
            active[ci] = False

        going = ~crossing
        gi = idx[going]
        prev_t[gi] = t[gi]
        prev_d[gi] = values[going]
        prev_ok[gi] = ok[going]

        if mode == RaycastMode.ADAPTIVE:
            # unobserved samples advance at the fixed step
            step = np.where(
                ok[going],
                np.clip(np.abs(values[going]) * to_voxels * config.adaptive_step_scale,
                        smallest, max(trunc_vox, smallest)),
                config.step_size,
            )
        else:
            step = config.step_size
        t[gi] += step
        active[gi[t[gi] > t_far[gi]]] = False

    hit_idx = np.nonzero(hit)[0]
    grid_points = o[hit_idx] + hit_t[hit_idx, None] * d[hit_idx]
    world_points = world_from_grid.transform_points(grid_points)
    world_normals = sample_normals(gradient, grid_points) @ world_from_grid.rotation.T
    return hit, world_points, world_normals, samples


def raycast(
    distance: np.ndarray,
    weight: np.ndarray,
    gradient: np.ndarray,
    world_from_grid: SimilarityTransform,
    max_truncation: float,
    flpp,
    world_from_camera: np.ndarray,
    width: int,
    height: int,
    mode: RaycastMode,
    config: RaycastConfig,
) -> RaycastImage:
    origins, directions = generate_rays(flpp, world_from_camera, width, height)
    hit, points, normals, samples = march(
        distance, weight, gradient, world_from_grid,
        origins, directions, max_truncation, mode, config,
    )

    positions = np.zeros((height * width, 4), dtype=np.float32)
    out_normals = np.zeros((height * width, 4), dtype=np.float32)
    positions[hit, :3] = points
    positions[hit, 3] = 1.0
    out_normals[hit, :3] = normals
    return RaycastImage(
        positions=positions.reshape(height, width, 4),
        normals=out_normals.reshape(height, width, 4),
        num_samples=samples,
    )
