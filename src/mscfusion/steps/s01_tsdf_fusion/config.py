"""Configuration for Step 01: multi-camera TSDF fusion."""

from typing import Literal

from pydantic import BaseModel, Field

from mscfusion.grid.config import GridConfig, RaycastConfig


class TsdfFusionConfig(BaseModel):
    grid: GridConfig = Field(default_factory=GridConfig, description="Voxel grid geometry")
    raycast: RaycastConfig = Field(default_factory=RaycastConfig, description="Raycast settings")
    fusion_mode: Literal["sequential", "batched"] = Field(
        "batched", description="sequential: one grid pass per camera; batched: one pass total"
    )
    depth_scale: float = Field(1.0, gt=0, description="Depth scale (1.0 if meters, 1000.0 if mm)")
    max_frames: int = Field(0, ge=0, description="Frames to fuse per camera (0 = all)")
    render_views: bool = Field(True, description="Raycast every depth camera after fusion")
    render_scale: float = Field(1.0, gt=0, description="Resolution scale of raycast renders")
    export_format: Literal["ply", "glb", "obj"] = Field("ply", description="Mesh file format")
    output_frame: list[float] | None = Field(
        None,
        min_length=16,
        max_length=16,
        description="Row-major 4x4 output_from_world applied to the mesh (identity if unset)",
    )
