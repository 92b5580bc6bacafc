"""I/O contracts for Step 01: multi-camera TSDF fusion."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class TsdfFusionInput(BaseModel):
    rig_file: Path = Field(..., description="Camera rig file (.yaml or .json)")
    frames_dir: Path = Field(..., description="Directory with one sub-directory of .npy frames per camera")


class TsdfFusionOutput(BaseModel):
    output_dir: Path = Field(..., description="Directory containing all step outputs")
    mesh_path: Optional[Path] = Field(None, description="Extracted surface mesh")
    num_mesh_vertices: int = Field(0, description="Number of mesh vertices")
    num_mesh_faces: int = Field(0, description="Number of mesh faces")
    num_frames_fused: int = Field(0, description="Number of time-aligned frames fused")
    render_dir: Optional[Path] = Field(None, description="Raycast position/normal maps (.npy)")
    metadata_path: Path = Field(..., description="Path to metadata.json")
