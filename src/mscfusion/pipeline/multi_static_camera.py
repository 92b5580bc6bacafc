"""Multi static camera pipeline: owns the camera registry, depth buffers and TSDF grid.

Per frame the caller fills ``input_buffer(i)`` for each camera, calls
``notify_input_updated(i)``, then ``fuse()`` or ``fuse_multiple()``.
The grid can be queried any time with ``raycast()`` or ``triangulate()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Sequence

import numpy as np

from mscfusion.core.cameras import (
    CalibratedPosedDepthCamera,
    PerspectiveCamera,
    RGBDCameraParameters,
)
from mscfusion.grid import (
    GridConfig,
    RaycastConfig,
    RaycastImage,
    RaycastMode,
    TriangleMesh,
    TSDFVoxelGrid,
)
from mscfusion.utils.geometry import Box3, SimilarityTransform
from .depth_processor import DepthProcessor

logger = logging.getLogger(__name__)


def _read_only(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view


class MultiStaticCameraPipeline:
    """Fuses depth from several static, calibrated cameras into one TSDF grid.

    Grid operations (fuse, reset, raycast, triangulate) are serialised on
    one lock; each camera's buffers have their own lock so different
    cameras can be updated independently.
    """

    def __init__(
        self,
        camera_params: Sequence[RGBDCameraParameters],
        grid_resolution: Sequence[int],
        world_from_grid: SimilarityTransform,
        max_tsdf_value: float,
        raycast_config: RaycastConfig | None = None,
        max_weight: float = 128.0,
        sample_weight: float = 1.0,
        block_size: int = 1 << 18,
    ):
        if len(camera_params) == 0:
            raise ValueError("MultiStaticCameraPipeline needs at least one camera")

        self._camera_params = tuple(camera_params)
        self.raycast_config = raycast_config or RaycastConfig()
        self._grid = TSDFVoxelGrid(
            grid_resolution,
            world_from_grid,
            max_tsdf_value,
            max_weight=max_weight,
            sample_weight=sample_weight,
            block_size=block_size,
        )

        self._input_buffers: list[np.ndarray] = []
        self._raw_depth: list[np.ndarray] = []
        self._undistorted_depth: list[np.ndarray] = []
        self._depth_processors: list[DepthProcessor] = []
        for params in self._camera_params:
            shape = params.depth_shape
            self._input_buffers.append(np.zeros(shape, dtype=np.float32))
            self._raw_depth.append(np.zeros(shape, dtype=np.float32))
            self._undistorted_depth.append(np.zeros(shape, dtype=np.float32))
            self._depth_processors.append(DepthProcessor(params.depth_range))

        self._grid_lock = threading.RLock()
        self._camera_locks = [threading.RLock() for _ in self._camera_params]
        logger.info(f"Pipeline ready with {self.num_cameras} camera(s)")

    @classmethod
    def from_config(
        cls,
        camera_params: Sequence[RGBDCameraParameters],
        grid_config: GridConfig,
        raycast_config: RaycastConfig | None = None,
    ) -> "MultiStaticCameraPipeline":
        return cls(
            camera_params,
            grid_config.resolution,
            grid_config.world_from_grid(),
            grid_config.max_truncation,
            raycast_config=raycast_config,
            max_weight=grid_config.max_weight,
            sample_weight=grid_config.sample_weight,
            block_size=grid_config.block_size,
        )

    # ── Camera registry ──────────────────────────────────────────────

    @property
    def num_cameras(self) -> int:
        return len(self._camera_params)

    def get_camera_parameters(self, camera_index: int) -> RGBDCameraParameters:
        return self._camera_params[camera_index]

    def get_depth_camera(self, camera_index: int) -> PerspectiveCamera:
        params = self._camera_params[camera_index]
        return PerspectiveCamera(
            world_from_camera=params.world_from_camera,
            intrinsics=params.depth_intrinsics,
            z_near=params.depth_range.min_depth,
            z_far=params.depth_range.max_depth,
        )

    # ── Grid geometry ────────────────────────────────────────────────

    @property
    def grid(self) -> TSDFVoxelGrid:
        return self._grid

    def tsdf_grid_bounding_box(self) -> Box3:
        return self._grid.bounding_box()

    def tsdf_world_from_grid(self) -> SimilarityTransform:
        return self._grid.world_from_grid

    # ── Per-camera input ─────────────────────────────────────────────

    def input_buffer(self, camera_index: int) -> np.ndarray:
        """Writable raw depth buffer (meters) for the caller to fill."""
        return self._input_buffers[camera_index]

    def raw_depth(self, camera_index: int) -> np.ndarray:
        return _read_only(self._raw_depth[camera_index])

    def undistorted_depth(self, camera_index: int) -> np.ndarray:
        return _read_only(self._undistorted_depth[camera_index])

    def notify_input_updated(self, camera_index: int, depth: np.ndarray | None = None) -> None:
        """Take the latest raw depth of one camera and undistort it.

        ``depth`` replaces the contents of ``input_buffer(camera_index)``
        when given.
        """
        params = self._camera_params[camera_index]
        with self._camera_locks[camera_index]:
            source = self._input_buffers[camera_index]
            if depth is not None:
                depth = np.asarray(depth)
                if depth.shape != source.shape:
                    raise ValueError(
                        f"Camera {camera_index}: depth shape {depth.shape} != {source.shape}"
                    )
                source[...] = depth
            np.copyto(self._raw_depth[camera_index], source)
            self._depth_processors[camera_index].undistort(
                self._raw_depth[camera_index],
                params.undistortion_map,
                out=self._undistorted_depth[camera_index],
            )

    # ── Fusion ───────────────────────────────────────────────────────

    def _calibrated_cameras(self) -> list[CalibratedPosedDepthCamera]:
        return [CalibratedPosedDepthCamera.from_parameters(p) for p in self._camera_params]

    def fuse(self) -> None:
        """Integrate every camera's undistorted depth, one grid pass per camera."""
        with self._grid_lock:
            for camera_index, camera in enumerate(self._calibrated_cameras()):
                with self._camera_locks[camera_index]:
                    self._grid.fuse(camera, self._undistorted_depth[camera_index])

    def fuse_multiple(self) -> None:
        """Integrate all cameras in a single pass over the grid."""
        with self._grid_lock:
            cameras = self._calibrated_cameras()
            for lock in self._camera_locks:
                lock.acquire()
            try:
                self._grid.fuse_multiple(cameras, self._undistorted_depth)
            finally:
                for lock in self._camera_locks:
                    lock.release()

    def reset(self) -> None:
        with self._grid_lock:
            self._grid.reset()

    # ── Queries ──────────────────────────────────────────────────────

    def raycast(
        self,
        camera: PerspectiveCamera,
        output_size: tuple[int, int] | None = None,
        mode: RaycastMode | str | None = None,
    ) -> RaycastImage:
        """Render world positions and normals of the surface seen from ``camera``.

        ``output_size`` is (width, height) and defaults to the camera's image
        size; ``mode`` defaults to the pipeline's raycast configuration.
        """
        width, height = output_size or camera.image_size
        intrinsics = camera.intrinsics_for(width, height)
        mode = RaycastMode(mode) if mode is not None else self.raycast_config.mode
        with self._grid_lock:
            return self._grid.raycast(
                intrinsics.flpp,
                camera.world_from_camera,
                width,
                height,
                mode=mode,
                config=self.raycast_config,
            )

    def triangulate(self, output_from_world: np.ndarray | None = None) -> TriangleMesh:
        """Extract the surface mesh and express it in the ``output_from_world`` frame."""
        with self._grid_lock:
            mesh = self._grid.triangulate()
        if output_from_world is None:
            return mesh
        return mesh.transformed(np.asarray(output_from_world, dtype=np.float64))
