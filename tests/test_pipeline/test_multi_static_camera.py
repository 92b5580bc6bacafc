"""Tests for the multi static camera pipeline orchestration."""

import threading

import numpy as np
import pytest

from mscfusion.core.cameras import PerspectiveCamera
from mscfusion.grid import GridConfig, GridState, RaycastConfig, RaycastMode
from mscfusion.pipeline import MultiStaticCameraPipeline
from mscfusion.utils.geometry import SimilarityTransform, make_w2c


@pytest.fixture
def cameras(make_camera, translation):
    return [
        make_camera("left", size=32, focal=32.0, depth_range=(0.05, 5.0)),
        make_camera("right", camera_from_world=translation(-0.1, 0.0, 0.0),
                    size=32, focal=32.0, depth_range=(0.05, 5.0)),
    ]


@pytest.fixture
def pipeline(cameras):
    return MultiStaticCameraPipeline(
        cameras,
        (32, 32, 32),
        SimilarityTransform.from_voxel_grid(0.05, (-0.8, -0.8, 0.2)),
        max_tsdf_value=0.15,
    )


def _feed_plane(pipeline, depth=1.0):
    for i in range(pipeline.num_cameras):
        pipeline.input_buffer(i)[...] = depth
        pipeline.notify_input_updated(i)


class TestConstruction:
    def test_requires_cameras(self):
        with pytest.raises(ValueError):
            MultiStaticCameraPipeline([], (4, 4, 4), SimilarityTransform(), 0.1)

    def test_from_config(self, cameras):
        cfg = GridConfig(resolution=(8, 8, 8), voxel_size=0.2, origin=(-0.8, -0.8, 0.2),
                         max_truncation=0.5)
        pipe = MultiStaticCameraPipeline.from_config(
            cameras, cfg, RaycastConfig(mode=RaycastMode.ADAPTIVE)
        )
        assert pipe.grid.resolution == (8, 8, 8)
        assert pipe.raycast_config.mode == RaycastMode.ADAPTIVE
        np.testing.assert_allclose(pipe.tsdf_world_from_grid().translation, [-0.8, -0.8, 0.2])

    def test_grid_geometry(self, pipeline):
        box = pipeline.tsdf_grid_bounding_box()
        np.testing.assert_array_equal(box.maximum, [32, 32, 32])
        assert pipeline.tsdf_world_from_grid().scale == pytest.approx(0.05)


class TestCameraRegistry:
    def test_num_cameras(self, pipeline):
        assert pipeline.num_cameras == 2

    def test_parameters_are_returned_as_registered(self, pipeline, cameras):
        assert pipeline.get_camera_parameters(1) is cameras[1]

    def test_index_out_of_range(self, pipeline):
        with pytest.raises(IndexError):
            pipeline.get_camera_parameters(2)
        with pytest.raises(IndexError):
            pipeline.input_buffer(5)

    def test_depth_camera(self, pipeline):
        cam = pipeline.get_depth_camera(1)
        assert isinstance(cam, PerspectiveCamera)
        assert cam.image_size == (32, 32)
        np.testing.assert_allclose(cam.center, [0.1, 0.0, 0.0])
        assert cam.z_near == pytest.approx(0.05)
        assert cam.z_far == pytest.approx(5.0)


class TestInputBuffers:
    def test_notify_does_not_touch_grid(self, pipeline):
        pipeline.input_buffer(0)[...] = 1.0
        pipeline.notify_input_updated(0)
        assert pipeline.grid.state == GridState.EMPTY
        assert np.all(pipeline.grid.weight == 0)

    def test_notify_updates_only_that_camera(self, pipeline):
        pipeline.notify_input_updated(0, np.full((32, 32), 1.5, dtype=np.float32))
        np.testing.assert_array_equal(pipeline.raw_depth(0), 1.5)
        np.testing.assert_array_equal(pipeline.undistorted_depth(0), 1.5)
        np.testing.assert_array_equal(pipeline.raw_depth(1), 0.0)
        np.testing.assert_array_equal(pipeline.undistorted_depth(1), 0.0)

    def test_buffers_are_snapshotted(self, pipeline):
        pipeline.input_buffer(0)[...] = 1.0
        pipeline.notify_input_updated(0)
        pipeline.input_buffer(0)[...] = 2.0
        np.testing.assert_array_equal(pipeline.raw_depth(0), 1.0)

    def test_output_views_are_read_only(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.raw_depth(0)[0, 0] = 1.0
        with pytest.raises(ValueError):
            pipeline.undistorted_depth(0)[0, 0] = 1.0

    def test_wrong_depth_shape(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.notify_input_updated(0, np.ones((8, 8), dtype=np.float32))

    def test_out_of_range_depth_is_dropped(self, pipeline):
        pipeline.notify_input_updated(0, np.full((32, 32), 7.0, dtype=np.float32))
        np.testing.assert_array_equal(pipeline.raw_depth(0), 7.0)
        np.testing.assert_array_equal(pipeline.undistorted_depth(0), 0.0)


class TestFusion:
    def test_fuse_and_fuse_multiple_agree(self, cameras):
        grids = []
        for use_multiple in (False, True):
            pipe = MultiStaticCameraPipeline(
                cameras, (16, 16, 16),
                SimilarityTransform.from_voxel_grid(0.1, (-0.8, -0.8, 0.2)), 0.3,
            )
            _feed_plane(pipe)
            fuse = pipe.fuse_multiple if use_multiple else pipe.fuse
            for _ in range(2):
                fuse()
            grids.append(pipe.grid)

        assert grids[0].weight.sum() > 0
        np.testing.assert_array_equal(grids[0].distance, grids[1].distance)
        np.testing.assert_array_equal(grids[0].weight, grids[1].weight)

    def test_empty_inputs_leave_grid_unknown(self, pipeline):
        pipeline.fuse_multiple()
        assert np.all(pipeline.grid.weight == 0)

    def test_reset(self, pipeline):
        _feed_plane(pipeline)
        pipeline.fuse()
        assert pipeline.grid.weight.sum() > 0
        pipeline.reset()
        assert pipeline.grid.state == GridState.EMPTY
        assert np.all(pipeline.grid.weight == 0)
        # buffers survive a grid reset
        np.testing.assert_array_equal(pipeline.undistorted_depth(0), 1.0)


class TestQueries:
    @pytest.mark.parametrize("mode", ["fixed_step", "adaptive", RaycastMode.ADAPTIVE, None])
    def test_raycast_from_registered_camera(self, pipeline, mode):
        _feed_plane(pipeline)
        pipeline.fuse_multiple()
        image = pipeline.raycast(pipeline.get_depth_camera(0), mode=mode)

        assert image.positions.shape == (32, 32, 4)
        hits = image.hit_mask
        assert hits[8:24, 8:24].all()
        np.testing.assert_allclose(image.positions[hits][:, 2], 1.0, atol=5e-3)

    def test_raycast_output_size(self, pipeline):
        _feed_plane(pipeline)
        pipeline.fuse()
        image = pipeline.raycast(pipeline.get_depth_camera(0), output_size=(20, 10))
        assert image.positions.shape == (10, 20, 4)
        assert image.normals.shape == (10, 20, 4)

    def test_invalid_mode(self, pipeline):
        with pytest.raises(ValueError):
            pipeline.raycast(pipeline.get_depth_camera(0), mode="sphere_tracing")

    def test_triangulate_frames(self, pipeline):
        _feed_plane(pipeline)
        pipeline.fuse_multiple()

        world = pipeline.triangulate()
        assert not world.is_empty()
        np.testing.assert_allclose(world.positions[:, 2], 1.0, atol=1e-4)

        output_from_world = np.eye(4)
        output_from_world[:3, 3] = [0.0, 0.0, -1.0]
        shifted = pipeline.triangulate(output_from_world)
        np.testing.assert_allclose(shifted.positions[:, 2], 0.0, atol=1e-4)
        np.testing.assert_array_equal(shifted.faces, world.faces)

    def test_triangulate_rotated_frame(self, pipeline):
        _feed_plane(pipeline)
        pipeline.fuse_multiple()
        world = pipeline.triangulate()

        half = np.pi / 12
        # 30 degrees about y
        output_from_world = make_w2c([np.cos(half), 0.0, np.sin(half), 0.0], [0.5, 0.0, -1.0])
        rotation = output_from_world[:3, :3]
        rotated = pipeline.triangulate(output_from_world)

        np.testing.assert_array_equal(rotated.faces, world.faces)
        np.testing.assert_allclose(rotated.positions, world.positions @ rotation.T + [0.5, 0.0, -1.0],
                                   atol=1e-10)
        np.testing.assert_allclose(rotated.normals, world.normals @ rotation.T, atol=1e-10)
        # the plane normal -z turns into -(sin 30, 0, cos 30)
        central = np.all(np.abs(world.positions[:, :2]) < 0.2, axis=1)
        expected = -np.array([np.sin(2 * half), 0.0, np.cos(2 * half)])
        assert np.all(rotated.normals[central] @ expected > np.cos(np.deg2rad(5.0)))

    def test_concurrent_raycasts_match(self, pipeline):
        _feed_plane(pipeline)
        pipeline.fuse_multiple()
        camera = pipeline.get_depth_camera(0)
        expected = pipeline.raycast(camera)

        results = [None] * 4
        errors = []

        def worker(slot):
            try:
                results[slot] = pipeline.raycast(camera)
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        for image in results:
            np.testing.assert_array_equal(image.positions, expected.positions)
            np.testing.assert_array_equal(image.normals, expected.normals)
