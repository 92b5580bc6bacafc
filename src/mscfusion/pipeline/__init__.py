"""Multi-camera orchestration around the TSDF grid."""

from .depth_processor import DepthProcessor
from .multi_static_camera import MultiStaticCameraPipeline

__all__ = ["DepthProcessor", "MultiStaticCameraPipeline"]
