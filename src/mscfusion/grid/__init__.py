"""Volumetric TSDF grid: fusion, raycasting and isosurface extraction."""

from .config import GridConfig, RaycastConfig, RaycastMode
from .mesh import TriangleMesh
from ._raycast import RaycastImage
from .tsdf_grid import GridState, TSDFVoxelGrid

__all__ = [
    "GridConfig",
    "RaycastConfig",
    "RaycastMode",
    "TriangleMesh",
    "RaycastImage",
    "GridState",
    "TSDFVoxelGrid",
]
