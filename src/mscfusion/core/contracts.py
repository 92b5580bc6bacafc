"""Common Pydantic models shared by the pipeline, the offline steps and rig files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class StepMeta(BaseModel):
    """Metadata attached to every step output for reproducibility."""

    step_name: str
    elapsed_seconds: float = 0.0
    params: dict[str, Any] = Field(default_factory=dict)


class CameraIntrinsics(BaseModel):
    """Pinhole intrinsics of a depth sensor, in pixels."""

    fx: float = Field(..., gt=0)
    fy: float = Field(..., gt=0)
    cx: float
    cy: float
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    model_config = {"frozen": True}

    @property
    def flpp(self) -> tuple[float, float, float, float]:
        """Focal length and principal point packed as (fx, fy, cx, cy)."""
        return (self.fx, self.fy, self.cx, self.cy)

    @property
    def resolution(self) -> tuple[int, int]:
        return (self.width, self.height)

    def scaled(self, width: int, height: int) -> "CameraIntrinsics":
        """Rescale to another image size covering the same field of view."""
        sx = width / self.width
        sy = height / self.height
        return CameraIntrinsics(
            fx=self.fx * sx,
            fy=self.fy * sy,
            cx=self.cx * sx,
            cy=self.cy * sy,
            width=width,
            height=height,
        )


class DepthRange(BaseModel):
    """Valid measurement range of a depth sensor, in meters."""

    min_depth: float = Field(..., ge=0)
    max_depth: float = Field(..., gt=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_order(self) -> "DepthRange":
        if self.min_depth >= self.max_depth:
            raise ValueError(
                f"min_depth ({self.min_depth}) must be < max_depth ({self.max_depth})"
            )
        return self

    def as_tuple(self) -> tuple[float, float]:
        return (self.min_depth, self.max_depth)


class CameraEntry(BaseModel):
    """One camera of a rig file.

    The pose is either ``camera_from_world`` (4x4 row-major, flattened)
    or a COLMAP-style world-to-camera ``qvec`` (w, x, y, z) + ``tvec``.
    """

    name: str
    color_width: int = Field(..., gt=0)
    color_height: int = Field(..., gt=0)
    depth_intrinsics: CameraIntrinsics
    depth_range: DepthRange
    camera_from_world: Optional[list[float]] = Field(None, min_length=16, max_length=16)
    qvec: Optional[list[float]] = Field(None, min_length=4, max_length=4)
    tvec: Optional[list[float]] = Field(None, min_length=3, max_length=3)
    undistortion_map: Optional[Path] = Field(
        None, description="(H, W, 2) .npy offset map, relative to the rig file"
    )

    @model_validator(mode="after")
    def _check_pose(self) -> "CameraEntry":
        has_matrix = self.camera_from_world is not None
        has_quat = self.qvec is not None and self.tvec is not None
        if has_matrix == has_quat:
            raise ValueError(
                f"Camera '{self.name}': give exactly one of camera_from_world or qvec+tvec"
            )
        return self


class CameraRig(BaseModel):
    """Top-level schema of a camera rig file (YAML or JSON)."""

    cameras: list[CameraEntry] = Field(..., min_length=1)


class PipelineConfig(BaseModel):
    """Top-level pipeline configuration loaded from pipeline.yaml."""

    project_name: str = "msc_fusion_project"
    data_root: Path = Path("./data")
    steps: list[StepEntry] = Field(default_factory=list)


class StepEntry(BaseModel):
    """One entry in the pipeline step list."""

    name: str
    module: str
    config_file: str
    depends_on: list[str] = Field(default_factory=list)
    enabled: bool = True


# Fix forward reference
PipelineConfig.model_rebuild()
