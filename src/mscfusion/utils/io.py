"""I/O utilities: camera rig files and depth frames."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import yaml

from mscfusion.core.cameras import RGBDCameraParameters
from mscfusion.core.contracts import CameraEntry, CameraRig
from .geometry import make_w2c

logger = logging.getLogger(__name__)


# ── Camera rigs ──────────────────────────────────────────────────────

def read_rig_file(rig_path: Path) -> CameraRig:
    """Parse a YAML or JSON rig file into its validated schema."""
    rig_path = Path(rig_path)
    with open(rig_path, encoding="utf-8") as f:
        if rig_path.suffix.lower() == ".json":
            raw = json.load(f)
        else:
            raw = yaml.safe_load(f)
    return CameraRig(**raw)


def camera_from_entry(entry: CameraEntry, base_dir: Path) -> RGBDCameraParameters:
    """Build immutable camera parameters from one rig entry."""
    if entry.camera_from_world is not None:
        cfw = np.array(entry.camera_from_world, dtype=np.float64).reshape(4, 4)
    else:
        cfw = make_w2c(entry.qvec, entry.tvec)

    undistortion_map = None
    if entry.undistortion_map is not None:
        map_path = entry.undistortion_map
        if not map_path.is_absolute():
            map_path = base_dir / map_path
        if not map_path.exists():
            raise FileNotFoundError(f"Undistortion map not found: {map_path}")
        undistortion_map = np.load(str(map_path))

    return RGBDCameraParameters(
        name=entry.name,
        color_resolution=(entry.color_width, entry.color_height),
        depth_intrinsics=entry.depth_intrinsics,
        depth_range=entry.depth_range,
        camera_from_world=cfw,
        undistortion_map=undistortion_map,
    )


def load_camera_rig(rig_path: Path) -> list[RGBDCameraParameters]:
    """Load every camera of a rig file."""
    rig_path = Path(rig_path)
    rig = read_rig_file(rig_path)
    cameras = [camera_from_entry(entry, rig_path.parent) for entry in rig.cameras]
    logger.info(f"Loaded {len(cameras)} camera(s) from {rig_path}")
    return cameras


# ── Depth frames ─────────────────────────────────────────────────────

def load_depth_frame(depth_path: Path, depth_scale: float = 1.0) -> np.ndarray:
    """Read a .npy depth image and convert it to float32 meters."""
    depth = np.load(str(depth_path))
    if depth.ndim != 2:
        raise ValueError(f"Depth frame {depth_path} has shape {depth.shape}, expected (H, W)")
    return (depth.astype(np.float32) / depth_scale).astype(np.float32)


def list_camera_frames(frames_dir: Path, camera_names: list[str]) -> dict[str, list[Path]]:
    """Sorted .npy frames per camera, from ``<frames_dir>/<camera_name>/``."""
    frames = {}
    for name in camera_names:
        camera_dir = Path(frames_dir) / name
        frames[name] = sorted(camera_dir.glob("*.npy")) if camera_dir.is_dir() else []
        if not frames[name]:
            logger.warning(f"No depth frames for camera '{name}' in {camera_dir}")
    return frames
