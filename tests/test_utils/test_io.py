"""Tests for rig and depth frame loading."""

import numpy as np
import pytest
import yaml

from mscfusion.utils.io import list_camera_frames, load_camera_rig, load_depth_frame


def _rig_entry(name, **pose):
    entry = {
        "name": name,
        "color_width": 8,
        "color_height": 8,
        "depth_intrinsics": {"fx": 4.0, "fy": 4.0, "cx": 2.0, "cy": 2.0, "width": 4, "height": 4},
        "depth_range": {"min_depth": 0.1, "max_depth": 3.0},
    }
    entry.update(pose)
    return entry


class TestLoadCameraRig:
    def test_json_rig(self, sample_rig):
        rig_file, _ = sample_rig
        cameras = load_camera_rig(rig_file)
        assert [c.name for c in cameras] == ["cam0", "cam1"]
        np.testing.assert_allclose(cameras[0].camera_from_world, np.eye(4))
        # world-to-camera translation -0.1 puts the camera at x = +0.1
        np.testing.assert_allclose(cameras[1].world_from_camera[:3, 3], [0.1, 0.0, 0.0])
        assert cameras[1].depth_shape == (24, 24)
        assert cameras[1].color_resolution == (48, 48)

    def test_yaml_rig_with_undistortion_map(self, tmp_path):
        umap = np.zeros((4, 4, 2), dtype=np.float32)
        umap[..., 0] = 1.0
        np.save(str(tmp_path / "umap.npy"), umap)
        rig = {"cameras": [_rig_entry("a", qvec=[1, 0, 0, 0], tvec=[0, 0, 1],
                                      undistortion_map="umap.npy")]}
        rig_file = tmp_path / "rig.yaml"
        with open(rig_file, "w") as f:
            yaml.dump(rig, f)

        (camera,) = load_camera_rig(rig_file)
        np.testing.assert_array_equal(camera.undistortion_map, umap)
        np.testing.assert_allclose(camera.camera_from_world[:3, 3], [0, 0, 1])

    def test_missing_undistortion_map(self, tmp_path):
        rig = {"cameras": [_rig_entry("a", qvec=[1, 0, 0, 0], tvec=[0, 0, 0],
                                      undistortion_map="missing.npy")]}
        rig_file = tmp_path / "rig.yaml"
        with open(rig_file, "w") as f:
            yaml.dump(rig, f)
        with pytest.raises(FileNotFoundError):
            load_camera_rig(rig_file)

    def test_non_rigid_pose(self, tmp_path):
        cfw = np.diag([2.0, 1.0, 1.0, 1.0]).flatten().tolist()
        rig_file = tmp_path / "rig.yaml"
        with open(rig_file, "w") as f:
            yaml.dump({"cameras": [_rig_entry("a", camera_from_world=cfw)]}, f)
        with pytest.raises(ValueError):
            load_camera_rig(rig_file)


class TestDepthFrames:
    def test_load_scaled(self, tmp_path):
        path = tmp_path / "d.npy"
        np.save(str(path), np.full((3, 5), 1500, dtype=np.uint16))
        depth = load_depth_frame(path, depth_scale=1000.0)
        assert depth.dtype == np.float32
        assert depth.shape == (3, 5)
        np.testing.assert_allclose(depth, 1.5)

    def test_rejects_non_image(self, tmp_path):
        path = tmp_path / "d.npy"
        np.save(str(path), np.zeros((2, 2, 3)))
        with pytest.raises(ValueError):
            load_depth_frame(path)

    def test_list_frames(self, sample_rig, tmp_path):
        _, frames_dir = sample_rig
        frames = list_camera_frames(frames_dir, ["cam0", "cam1", "cam9"])
        assert [p.name for p in frames["cam0"]] == [
            "frame_0000.npy", "frame_0001.npy", "frame_0002.npy"
        ]
        assert len(frames["cam1"]) == 3
        assert frames["cam9"] == []
