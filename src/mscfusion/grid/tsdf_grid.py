"""Dense TSDF voxel grid: storage plus fuse / raycast / triangulate."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Sequence

import numpy as np

from mscfusion.core.cameras import CalibratedPosedDepthCamera
from mscfusion.utils.geometry import Box3, SimilarityTransform
from . import _fusion, _raycast, _triangulate
from ._sampling import gradient_field
from .config import GridConfig, RaycastConfig, RaycastMode
from .mesh import TriangleMesh

logger = logging.getLogger(__name__)


class GridState(str, Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"


class TSDFVoxelGrid:
    """Fixed-size voxel grid holding a running signed distance and weight per voxel.

    Unobserved voxels have ``weight == 0`` and ``distance == +max_truncation``.
    Voxel (i, j, k) is centred at grid coordinate (i + 0.5, j + 0.5, k + 0.5);
    ``world_from_grid`` maps grid coordinates to world coordinates.
    """

    def __init__(
        self,
        resolution: Sequence[int],
        world_from_grid: SimilarityTransform,
        max_truncation: float,
        max_weight: float = 128.0,
        sample_weight: float = 1.0,
        block_size: int = 1 << 18,
    ):
        resolution = tuple(int(r) for r in resolution)
        if len(resolution) != 3 or min(resolution) < 1:
            raise ValueError(f"Grid resolution must be three positive ints, got {resolution}")
        if max_truncation <= 0:
            raise ValueError(f"max_truncation must be positive, got {max_truncation}")
        if max_weight <= 0 or sample_weight <= 0:
            raise ValueError("max_weight and sample_weight must be positive")

        self._resolution = resolution
        self._world_from_grid = world_from_grid
        self._max_truncation = float(max_truncation)
        self._max_weight = float(max_weight)
        self._sample_weight = float(sample_weight)
        self._block_size = int(block_size)

        self._distance = np.full(resolution, self._max_truncation, dtype=np.float32)
        self._weight = np.zeros(resolution, dtype=np.float32)
        self._state = GridState.EMPTY
        self._version = 0
        self._gradient_cache: tuple[int, np.ndarray] | None = None

        logger.info(
            f"TSDF grid {resolution[0]}x{resolution[1]}x{resolution[2]} "
            f"(voxel {world_from_grid.scale:.4f} m, trunc {self._max_truncation:.4f} m)"
        )

    @classmethod
    def from_config(cls, config: GridConfig) -> "TSDFVoxelGrid":
        return cls(
            config.resolution,
            config.world_from_grid(),
            config.max_truncation,
            max_weight=config.max_weight,
            sample_weight=config.sample_weight,
            block_size=config.block_size,
        )

    # ── Properties ────────────────────────────────────────────────────

    @property
    def resolution(self) -> tuple[int, int, int]:
        return self._resolution

    @property
    def world_from_grid(self) -> SimilarityTransform:
        return self._world_from_grid

    @property
    def max_truncation(self) -> float:
        return self._max_truncation

    @property
    def max_weight(self) -> float:
        return self._max_weight

    @property
    def sample_weight(self) -> float:
        return self._sample_weight

    @property
    def state(self) -> GridState:
        return self._state

    @property
    def distance(self) -> np.ndarray:
        """Read-only view of the signed distances."""
        view = self._distance.view()
        view.flags.writeable = False
        return view

    @property
    def weight(self) -> np.ndarray:
        """Read-only view of the accumulated weights."""
        view = self._weight.view()
        view.flags.writeable = False
        return view

    def bounding_box(self) -> Box3:
        """Grid-space box covered by the voxels, ``[0, resolution]``."""
        return Box3(np.zeros(3), np.asarray(self._resolution, dtype=np.float64))

    def world_bounding_box(self) -> Box3:
        corners = self._world_from_grid.transform_points(self.bounding_box().corners())
        return Box3(corners.min(axis=0), corners.max(axis=0))

    def voxel_center(self, index: Sequence[int]) -> np.ndarray:
        """World-space centre of voxel ``index``."""
        p = np.asarray(index, dtype=np.float64) + 0.5
        return self._world_from_grid.transform_points(p[None, :])[0]

    # ── Mutation ─────────────────────────────────────────────────────

    def reset(self) -> None:
        self._distance.fill(self._max_truncation)
        self._weight.fill(0.0)
        self._state = GridState.EMPTY
        self._version += 1
        logger.debug("TSDF grid reset")

    def fuse(self, camera: CalibratedPosedDepthCamera, depth: np.ndarray) -> int:
        """Integrate one camera's undistorted depth with a full pass over the grid."""
        return self._fuse(_fusion.fuse_sequential, [camera], [depth])

    def fuse_sequential(
        self, cameras: Sequence[CalibratedPosedDepthCamera], depths: Sequence[np.ndarray]
    ) -> int:
        """Integrate several cameras, one full grid pass each."""
        return self._fuse(_fusion.fuse_sequential, cameras, depths)

    def fuse_multiple(
        self, cameras: Sequence[CalibratedPosedDepthCamera], depths: Sequence[np.ndarray]
    ) -> int:
        """Integrate several cameras in a single pass over the grid."""
        return self._fuse(_fusion.fuse_batched, cameras, depths)

    def _fuse(self, kernel, cameras, depths) -> int:
        if len(cameras) != len(depths):
            raise ValueError(f"{len(cameras)} cameras but {len(depths)} depth buffers")
        updates = kernel(
            self._distance,
            self._weight,
            cameras,
            depths,
            self._world_from_grid,
            self._max_truncation,
            self._sample_weight,
            self._max_weight,
            self._block_size,
        )
        self._state = GridState.ACCUMULATING
        self._version += 1
        logger.debug(f"Fused {len(cameras)} camera(s): {updates} voxel updates")
        return updates

    # ── Queries ──────────────────────────────────────────────────────

    def _gradient(self) -> np.ndarray:
        if self._gradient_cache is None or self._gradient_cache[0] != self._version:
            self._gradient_cache = (self._version, gradient_field(self._distance))
        return self._gradient_cache[1]

    def raycast(
        self,
        flpp,
        world_from_camera: np.ndarray,
        width: int,
        height: int,
        mode: RaycastMode = RaycastMode.FIXED_STEP,
        config: RaycastConfig | None = None,
    ) -> _raycast.RaycastImage:
        """Trace one ray per output pixel and report the first surface crossing."""
        config = config or RaycastConfig()
        image = _raycast.raycast(
            self._distance,
            self._weight,
            self._gradient(),
            self._world_from_grid,
            self._max_truncation,
            flpp,
            world_from_camera,
            width,
            height,
            RaycastMode(mode),
            config,
        )
        logger.debug(
            f"Raycast ({RaycastMode(mode).value}) {width}x{height}: "
            f"{image.num_hits} hits, {image.num_samples} samples"
        )
        return image

    def triangulate(self) -> TriangleMesh:
        """Marching-cubes mesh of the observed zero level set, in world space."""
        return _triangulate.extract_mesh(self._distance, self._weight, self._world_from_grid)
