"""Depth undistortion: per-pixel remap of raw depth through an offset map."""

from __future__ import annotations

import logging

import numpy as np
from scipy import ndimage

from mscfusion.core.contracts import DepthRange

logger = logging.getLogger(__name__)


class DepthProcessor:
    """Remaps raw depth into the undistorted image and drops out-of-range samples.

    For undistorted pixel (row, col) the raw pixel read is
    ``(row + map[row, col, 1], col + map[row, col, 0])``, nearest neighbour,
    so depth discontinuities are never blended. Invalid output is 0.
    """

    def __init__(self, depth_range: DepthRange):
        self.depth_range = depth_range

    def undistort(
        self, raw: np.ndarray, undistortion_map: np.ndarray, out: np.ndarray | None = None
    ) -> np.ndarray:
        rows, cols = raw.shape
        if undistortion_map.shape != (rows, cols, 2):
            raise ValueError(
                f"Undistortion map {undistortion_map.shape} does not match depth {raw.shape}"
            )
        if out is None:
            out = np.empty((rows, cols), dtype=np.float32)

        clean = np.where(np.isfinite(raw), raw, 0.0).astype(np.float32)
        if np.any(undistortion_map):
            rr, cc = np.mgrid[0:rows, 0:cols].astype(np.float32)
            coords = np.stack([rr + undistortion_map[..., 1], cc + undistortion_map[..., 0]])
            ndimage.map_coordinates(clean, coords, output=out, order=0, mode="constant", cval=0.0)
        else:
            out[...] = clean

        d_min, d_max = self.depth_range.as_tuple()
        out[(out < d_min) | (out > d_max)] = 0.0
        return out
