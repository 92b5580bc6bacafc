"""Step 01: fuse recorded multi-camera depth into a TSDF, then extract mesh and renders."""

from __future__ import annotations

import json
import logging
from typing import ClassVar

import numpy as np

from mscfusion.core.step_base import BaseStep
from mscfusion.pipeline import MultiStaticCameraPipeline
from mscfusion.utils.io import list_camera_frames, load_camera_rig, load_depth_frame
from .config import TsdfFusionConfig
from .contracts import TsdfFusionInput, TsdfFusionOutput

logger = logging.getLogger(__name__)


class TsdfFusionStep(BaseStep[TsdfFusionInput, TsdfFusionOutput, TsdfFusionConfig]):
    name: ClassVar[str] = "tsdf_fusion"
    output_subdir: ClassVar[str] = "s01_tsdf_fusion"
    input_type: ClassVar = TsdfFusionInput
    output_type: ClassVar = TsdfFusionOutput
    config_type: ClassVar = TsdfFusionConfig

    def validate_inputs(self, inputs: TsdfFusionInput) -> bool:
        if not inputs.rig_file.exists():
            logger.error(f"Rig file not found: {inputs.rig_file}")
            return False
        if not inputs.frames_dir.is_dir():
            logger.error(f"Frames directory not found: {inputs.frames_dir}")
            return False
        return True

    def run(self, inputs: TsdfFusionInput) -> TsdfFusionOutput:
        output_dir = self.output_dir

        cameras = load_camera_rig(inputs.rig_file)
        pipeline = MultiStaticCameraPipeline.from_config(
            cameras, self.config.grid, self.config.raycast
        )

        names = [c.name for c in cameras]
        frames = list_camera_frames(inputs.frames_dir, names)
        num_frames = max((len(f) for f in frames.values()), default=0)
        if self.config.max_frames:
            num_frames = min(num_frames, self.config.max_frames)

        # Fuse time-aligned frames; a camera without frame k keeps its last depth
        for k in range(num_frames):
            for i, name in enumerate(names):
                if k >= len(frames[name]):
                    continue
                depth = load_depth_frame(frames[name][k], self.config.depth_scale)
                if depth.shape != cameras[i].depth_shape:
                    logger.warning(
                        f"Skipping {frames[name][k]}: shape {depth.shape} "
                        f"!= {cameras[i].depth_shape}"
                    )
                    continue
                pipeline.notify_input_updated(i, depth)

            if self.config.fusion_mode == "batched":
                pipeline.fuse_multiple()
            else:
                pipeline.fuse()
            logger.debug(f"Fused frame {k + 1}/{num_frames}")

        logger.info(f"Fused {num_frames} frame(s) from {len(cameras)} camera(s)")

        # Camera centres, flagged when they sit inside the volume
        world_box = pipeline.grid.world_bounding_box()
        centers = {name: pipeline.get_depth_camera(i).center for i, name in enumerate(names)}
        inside = [name for name, c in centers.items() if bool(world_box.contains(c))]
        if inside:
            logger.warning(f"Camera(s) inside the TSDF volume: {inside}")

        # Extract mesh
        output_from_world = None
        if self.config.output_frame is not None:
            output_from_world = np.array(self.config.output_frame, dtype=np.float64).reshape(4, 4)
        mesh = pipeline.triangulate(output_from_world)

        mesh_path = None
        if mesh.is_empty():
            logger.warning("No surface extracted; skipping mesh export")
        else:
            from ._mesh_writer import write_mesh

            mesh_path = output_dir / f"surface_mesh.{self.config.export_format}"
            write_mesh(mesh, mesh_path, file_type=self.config.export_format)

        # Raycast every depth camera viewpoint
        render_dir = None
        render_stats = {}
        if self.config.render_views:
            render_dir = output_dir / "renders"
            render_dir.mkdir(parents=True, exist_ok=True)
            for i, name in enumerate(names):
                view = pipeline.get_depth_camera(i)
                width, height = view.image_size
                size = (
                    max(1, int(round(width * self.config.render_scale))),
                    max(1, int(round(height * self.config.render_scale))),
                )
                image = pipeline.raycast(view, size)
                np.save(str(render_dir / f"{name}_positions.npy"), image.positions)
                np.save(str(render_dir / f"{name}_normals.npy"), image.normals)
                render_stats[name] = image.num_hits
            logger.info(f"Rendered {len(names)} view(s) to {render_dir}")

        metadata = {
            "num_cameras": len(cameras),
            "camera_names": names,
            "camera_centers": {name: c.tolist() for name, c in centers.items()},
            "cameras_inside_grid": inside,
            "num_frames_fused": num_frames,
            "fusion_mode": self.config.fusion_mode,
            "grid_resolution": list(self.config.grid.resolution),
            "voxel_size": self.config.grid.voxel_size,
            "max_truncation": self.config.grid.max_truncation,
            "raycast_mode": self.config.raycast.mode.value,
            "num_mesh_vertices": mesh.num_vertices,
            "num_mesh_faces": mesh.num_faces,
            "render_hits": render_stats,
            "config": self.config.model_dump(mode="json"),
        }
        metadata_path = output_dir / "metadata.json"
        with open(metadata_path, "w") as f:
            json.dump(metadata, f, indent=2)

        return TsdfFusionOutput(
            output_dir=output_dir,
            mesh_path=mesh_path,
            num_mesh_vertices=mesh.num_vertices,
            num_mesh_faces=mesh.num_faces,
            num_frames_fused=num_frames,
            render_dir=render_dir,
            metadata_path=metadata_path,
        )
