"""Trilinear sampling of voxel fields at continuous grid coordinates.

Voxel (i, j, k) sits at grid coordinate (i + 0.5, j + 0.5, k + 0.5);
sampling works in "index space" q = p - 0.5.
"""

from __future__ import annotations

import numpy as np

_CORNERS = np.array(
    [[i, j, k] for i in (0, 1) for j in (0, 1) for k in (0, 1)], dtype=np.int64
)


def _cell(points: np.ndarray, shape: tuple[int, int, int]):
    """Lower corner index and fractional offset of the cell holding each point."""
    dims = np.asarray(shape, dtype=np.int64)
    q = points - 0.5
    upper = np.maximum(dims - 2, 0)
    base = np.clip(np.floor(q).astype(np.int64), 0, upper)
    frac = q - base
    inside = np.all((q >= 0.0) & (q <= dims - 1), axis=-1) & np.all(dims >= 2)
    return base, frac, inside


def _corner_weights(frac: np.ndarray) -> np.ndarray:
    """(N, 8) trilinear weights in ``_CORNERS`` order."""
    f = frac[:, None, :]
    w = np.where(_CORNERS[None, :, :] == 1, f, 1.0 - f)
    return w.prod(axis=-1)


def sample_tsdf(
    distance: np.ndarray, weight: np.ndarray, points: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Trilinearly sample the distance field at (N, 3) grid points.

    Returns (values, valid). A sample is valid when it lies between voxel
    centres and all eight corner voxels have been observed.
    """
    n = len(points)
    values = np.zeros(n, dtype=np.float64)
    valid = np.zeros(n, dtype=bool)
    if n == 0:
        return values, valid

    base, frac, inside = _cell(points, distance.shape)
    idx = np.nonzero(inside)[0]
    if len(idx) == 0:
        return values, valid

    corners = base[idx, None, :] + _CORNERS[None, :, :]
    ci, cj, ck = corners[..., 0], corners[..., 1], corners[..., 2]
    observed = np.all(weight[ci, cj, ck] > 0, axis=1)
    cw = _corner_weights(frac[idx])
    values[idx] = np.sum(cw * distance[ci, cj, ck], axis=1)
    valid[idx] = observed
    return values, valid


def gradient_field(distance: np.ndarray) -> np.ndarray:
    """Central finite differences of the distance field, (nx, ny, nz, 3)."""
    axes = [a for a in range(3) if distance.shape[a] > 1]
    grad = np.zeros(distance.shape + (3,), dtype=np.float32)
    if not axes:
        return grad
    parts = np.gradient(distance.astype(np.float32), axis=axes)
    if len(axes) == 1:
        parts = [parts]
    for axis, part in zip(axes, parts):
        grad[..., axis] = part
    return grad


def sample_normals(grad: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Unit gradient directions at (N, 3) grid points; zero where degenerate."""
    n = len(points)
    normals = np.zeros((n, 3), dtype=np.float64)
    if n == 0:
        return normals

    shape = grad.shape[:3]
    dims = np.asarray(shape, dtype=np.float64)
    # Clamp into the sampleable range so surface points on the border still get a normal
    clamped = np.clip(points, 0.5, np.maximum(dims - 0.5, 0.5))
    base, frac, _ = _cell(clamped, shape)
    upper = np.asarray(shape, dtype=np.int64) - 1
    corners = np.minimum(base[:, None, :] + _CORNERS[None, :, :], upper)
    cw = _corner_weights(np.clip(frac, 0.0, 1.0))
    g = np.sum(cw[..., None] * grad[corners[..., 0], corners[..., 1], corners[..., 2]], axis=1)

    norms = np.linalg.norm(g, axis=-1, keepdims=True)
    np.divide(g, norms, out=normals, where=norms > 1e-12)
    return normals
