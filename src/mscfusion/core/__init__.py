"""msc-fusion core: contracts, camera records, base step, runner, logging."""

from .step_base import BaseStep
from .contracts import (
    PipelineConfig,
    StepEntry,
    StepMeta,
    CameraIntrinsics,
    DepthRange,
    CameraEntry,
    CameraRig,
)
from .cameras import RGBDCameraParameters, PerspectiveCamera, CalibratedPosedDepthCamera
from .pipeline_runner import run_pipeline, load_pipeline_config
from .logging import setup_logging

__all__ = [
    "BaseStep",
    "PipelineConfig",
    "StepEntry",
    "StepMeta",
    "CameraIntrinsics",
    "DepthRange",
    "CameraEntry",
    "CameraRig",
    "RGBDCameraParameters",
    "PerspectiveCamera",
    "CalibratedPosedDepthCamera",
    "run_pipeline",
    "load_pipeline_config",
    "setup_logging",
]
