"""Camera records: calibrated RGBD cameras, view cameras and fusion batch entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from mscfusion.utils.geometry import invert_rigid, is_rigid
from .contracts import CameraIntrinsics, DepthRange

logger = logging.getLogger(__name__)


def _frozen(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class RGBDCameraParameters:
    """Immutable calibration of one static RGBD camera.

    The depth resolution is the one of ``depth_intrinsics``. The
    undistortion map holds, for every undistorted depth pixel, the (dx, dy)
    offset of the raw pixel to read. ``camera_from_world`` is the rigid
    extrinsic pose of the depth sensor.
    """

    name: str
    color_resolution: tuple[int, int]
    depth_intrinsics: CameraIntrinsics
    depth_range: DepthRange
    camera_from_world: np.ndarray = field(default_factory=lambda: np.eye(4))
    undistortion_map: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        cfw = np.array(self.camera_from_world, dtype=np.float64).reshape(4, 4)
        if not is_rigid(cfw):
            raise ValueError(f"Camera '{self.name}': camera_from_world is not a rigid transform")

        width, height = self.depth_intrinsics.resolution
        if self.undistortion_map is None:
            umap = np.zeros((height, width, 2), dtype=np.float32)
        else:
            umap = np.array(self.undistortion_map, dtype=np.float32)
            if umap.shape != (height, width, 2):
                raise ValueError(
                    f"Camera '{self.name}': undistortion map shape {umap.shape} "
                    f"!= depth resolution {(height, width, 2)}"
                )

        object.__setattr__(self, "color_resolution", tuple(int(v) for v in self.color_resolution))
        object.__setattr__(self, "camera_from_world", _frozen(cfw))
        object.__setattr__(self, "undistortion_map", _frozen(umap))

    @property
    def depth_resolution(self) -> tuple[int, int]:
        """(width, height) of the depth image."""
        return self.depth_intrinsics.resolution

    @property
    def depth_shape(self) -> tuple[int, int]:
        """(rows, cols) of a depth buffer."""
        width, height = self.depth_intrinsics.resolution
        return (height, width)

    @property
    def world_from_camera(self) -> np.ndarray:
        return invert_rigid(self.camera_from_world)


@dataclass(frozen=True, eq=False)
class PerspectiveCamera:
    """A posed pinhole camera (+z forward, +y down)."""

    world_from_camera: np.ndarray
    intrinsics: CameraIntrinsics
    z_near: float = 0.01
    z_far: float = 100.0

    @property
    def camera_from_world(self) -> np.ndarray:
        return invert_rigid(self.world_from_camera)

    @property
    def image_size(self) -> tuple[int, int]:
        return self.intrinsics.resolution

    @property
    def center(self) -> np.ndarray:
        return np.asarray(self.world_from_camera, dtype=np.float64)[:3, 3]

    def intrinsics_for(self, width: int, height: int) -> CameraIntrinsics:
        """Intrinsics rescaled to an output image of ``width`` x ``height``."""
        if (width, height) == self.intrinsics.resolution:
            return self.intrinsics
        return self.intrinsics.scaled(width, height)


@dataclass(frozen=True, eq=False)
class CalibratedPosedDepthCamera:
    """Transient per-camera record consumed by one fusion call."""

    flpp: np.ndarray  # (4,) fx, fy, cx, cy
    depth_min_max: np.ndarray  # (2,)
    camera_from_world: np.ndarray  # (4, 4)

    @classmethod
    def from_parameters(cls, params: RGBDCameraParameters) -> "CalibratedPosedDepthCamera":
        return cls(
            flpp=np.asarray(params.depth_intrinsics.flpp, dtype=np.float64),
            depth_min_max=np.asarray(params.depth_range.as_tuple(), dtype=np.float64),
            camera_from_world=params.camera_from_world,
        )
