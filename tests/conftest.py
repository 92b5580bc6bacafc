"""Shared pytest fixtures for msc-fusion tests: synthetic cameras, planes and rigs."""

import json
from pathlib import Path

import numpy as np
import pytest

from mscfusion.core.cameras import CalibratedPosedDepthCamera, RGBDCameraParameters
from mscfusion.core.contracts import CameraIntrinsics, DepthRange
from mscfusion.grid import TSDFVoxelGrid
from mscfusion.utils.geometry import SimilarityTransform


def _translation(x: float, y: float, z: float) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = [x, y, z]
    return m


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Create a temporary data root with standard directory structure."""
    for subdir in ["raw", "interim/s01_tsdf_fusion", "processed"]:
        (tmp_path / subdir).mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture
def make_camera():
    """Factory for RGBD camera parameters with a square pinhole depth sensor."""

    def _make(
        name: str = "cam0",
        camera_from_world: np.ndarray | None = None,
        size: int = 16,
        focal: float = 4.0,
        depth_range: tuple[float, float] = (0.1, 10.0),
        undistortion_map: np.ndarray | None = None,
    ) -> RGBDCameraParameters:
        return RGBDCameraParameters(
            name=name,
            color_resolution=(2 * size, 2 * size),
            depth_intrinsics=CameraIntrinsics(
                fx=focal, fy=focal, cx=size / 2, cy=size / 2, width=size, height=size
            ),
            depth_range=DepthRange(min_depth=depth_range[0], max_depth=depth_range[1]),
            camera_from_world=np.eye(4) if camera_from_world is None else camera_from_world,
            undistortion_map=undistortion_map,
        )

    return _make


@pytest.fixture
def translation():
    return _translation


@pytest.fixture
def unit_grid() -> TSDFVoxelGrid:
    """3x3x3 grid of 1 m voxels centred at the origin, truncation 0.5 m."""
    return TSDFVoxelGrid(
        (3, 3, 3),
        SimilarityTransform(scale=1.0, translation=[-1.5, -1.5, -1.5]),
        max_truncation=0.5,
    )


@pytest.fixture
def plane_scene(make_camera):
    """Camera at the world origin looking down +z at a plane z = 1.

    The grid spans x, y in [-0.8, 0.8] and z in [0.2, 1.8] with 5 cm voxels.
    """
    camera = make_camera(size=64, focal=64.0, depth_range=(0.05, 5.0))
    depth = np.full(camera.depth_shape, 1.0, dtype=np.float32)
    grid = TSDFVoxelGrid(
        (32, 32, 32),
        SimilarityTransform.from_voxel_grid(0.05, (-0.8, -0.8, 0.2)),
        max_truncation=0.15,
    )
    grid.fuse(CalibratedPosedDepthCamera.from_parameters(camera), depth)
    return grid, camera, depth


@pytest.fixture
def sample_rig(tmp_path: Path) -> tuple[Path, Path]:
    """Two-camera rig file plus three frames per camera of a plane at z = 1."""
    intrinsics = {"fx": 24.0, "fy": 24.0, "cx": 12.0, "cy": 12.0, "width": 24, "height": 24}
    rig = {
        "cameras": [
            {
                "name": "cam0",
                "color_width": 48,
                "color_height": 48,
                "depth_intrinsics": intrinsics,
                "depth_range": {"min_depth": 0.05, "max_depth": 5.0},
                "camera_from_world": np.eye(4).flatten().tolist(),
            },
            {
                "name": "cam1",
                "color_width": 48,
                "color_height": 48,
                "depth_intrinsics": intrinsics,
                "depth_range": {"min_depth": 0.05, "max_depth": 5.0},
                # 10 cm to the side of cam0, same orientation
                "qvec": [1.0, 0.0, 0.0, 0.0],
                "tvec": [-0.1, 0.0, 0.0],
            },
        ]
    }
    rig_file = tmp_path / "rig.json"
    with open(rig_file, "w") as f:
        json.dump(rig, f)

    frames_dir = tmp_path / "frames"
    for cam in ("cam0", "cam1"):
        (frames_dir / cam).mkdir(parents=True)
        for i in range(3):
            # millimetres, like a raw sensor dump
            np.save(str(frames_dir / cam / f"frame_{i:04d}.npy"),
                    np.full((24, 24), 1000, dtype=np.uint16))
    return rig_file, frames_dir
