"""Configuration for the TSDF voxel grid and its raycasters."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from mscfusion.utils.geometry import SimilarityTransform


class RaycastMode(str, Enum):
    FIXED_STEP = "fixed_step"
    ADAPTIVE = "adaptive"


class GridConfig(BaseModel):
    resolution: tuple[int, int, int] = Field((256, 256, 256), description="Voxels along x, y, z")
    voxel_size: float = Field(0.01, gt=0, description="Voxel edge length in meters")
    origin: tuple[float, float, float] = Field(
        (-1.28, -1.28, 0.0), description="World position of the grid corner (0, 0, 0)"
    )
    max_truncation: float = Field(0.04, gt=0, description="Truncation distance in meters")
    max_weight: float = Field(128.0, gt=0, description="Cap on accumulated voxel weight")
    sample_weight: float = Field(1.0, gt=0, description="Weight of one depth observation")
    block_size: int = Field(1 << 18, gt=0, description="Voxels processed per vectorised block")

    @field_validator("resolution")
    @classmethod
    def _positive_resolution(cls, v: tuple[int, int, int]) -> tuple[int, int, int]:
        if min(v) < 1:
            raise ValueError(f"Grid resolution must be positive, got {v}")
        return v

    def world_from_grid(self) -> SimilarityTransform:
        return SimilarityTransform.from_voxel_grid(self.voxel_size, self.origin)


class RaycastConfig(BaseModel):
    mode: RaycastMode = Field(RaycastMode.FIXED_STEP, description="fixed_step|adaptive")
    step_size: float = Field(0.5, gt=0, description="Fixed march step in voxels")
    min_step: float = Field(0.25, gt=0, description="Smallest adaptive step in voxels")
    adaptive_step_scale: float = Field(
        0.8, gt=0, le=1.0, description="Fraction of the sampled distance taken as the next step"
    )
