"""
End-to-end tests of the meshing pipeline with a fake engine.
"""

import logging

import numpy as np
import pytest

from LargeScaleMeshing import LargeScaleMeshingPipeline, MeshingConfig, PartitioningMode
from LargeScaleMeshing.core.interfaces import ICameraTrackProvider, IDenseReconstructionEngine
from LargeScaleMeshing.core.structures import Camera, Hexahedron, LocalMeshResult, TrackSet, VoxelGrid
from LargeScaleMeshing.data.providers import SyntheticProvider
from LargeScaleMeshing.errors import (
    ConfigurationError, EmptyMeshError, InvalidPartitioningMode, SizingSearchFailure,
)
from LargeScaleMeshing.io import DENSE_RECONSTRUCTION_BIN, PTS_CAMS_BIN, load_mesh_bin, load_space, save_space
from LargeScaleMeshing.planning import PLAN_CACHE_FILENAME

from conftest import FakeEngine


class LineProvider(ICameraTrackProvider):
    """10000 tracks evenly spaced along a unit segment, seen by one camera"""

    def get_cameras(self):
        return [Camera(id=0, K=np.eye(3), R=np.eye(3), t=np.array([0.0, 0.0, 5.0]),
                       width=100, height=100)]

    def get_tracks(self, sim_threshold=None):
        x = np.linspace(0.0, 1.0, 10000)
        points = np.column_stack([x, np.zeros_like(x), np.zeros_like(x)])
        return TrackSet.from_observations(points, np.zeros(len(x), dtype=np.int32))


class TwoClusterProvider(ICameraTrackProvider):
    """Two track clusters in opposite corners of the unit cube, empty space between"""

    def get_cameras(self):
        return [Camera(id=i, K=np.eye(3), R=np.eye(3), t=np.array([0.0, 0.0, 5.0 + i]),
                       width=100, height=100) for i in range(4)]

    def get_tracks(self, sim_threshold=None):
        rng = np.random.default_rng(3)
        points = np.concatenate([rng.uniform(0.0, 0.3, size=(3000, 3)),
                                 rng.uniform(0.7, 1.0, size=(3000, 3))])
        return TrackSet.from_lists(points, [[i % 4] for i in range(len(points))])


class TrackMeshEngine(IDenseReconstructionEngine):
    """Meshes the tracks of the request lying inside the block"""

    def __init__(self):
        self.requests = []

    def reconstruct_block(self, request):
        self.requests.append(request)
        inside = request.block.hexahedron.contains(request.tracks.points)
        vertices = request.tracks.points[inside]
        n = len(vertices)
        faces = [[i, (i + 1) % n, (i + 2) % n] for i in range(0, n, 3)]
        pts_cams = [request.tracks.cameras_of(i) for i in np.flatnonzero(inside)]
        return LocalMeshResult(vertices, np.asarray(faces, dtype=np.int64).reshape(-1, 3),
                               pts_cams, request.block.name)

    def post_process(self, result, request):
        return result


@pytest.fixture
def provider():
    return SyntheticProvider(num_cameras=8, sphere_points=800, plane_points=400, seed=1)


def _config(tmp_path, **kwargs):
    values = dict(output_mesh=str(tmp_path / 'out' / 'mesh.obj'), grid_level0=64)
    values.update(kwargs)
    return MeshingConfig(**values)


class TestAutoMode:
    def test_run(self, tmp_path, provider, fake_engine):
        config = _config(tmp_path, partitioning=PartitioningMode.AUTO,
                         max_pts=600, max_pts_per_voxel=300)
        result = LargeScaleMeshingPipeline(config, provider, engine=fake_engine).run()

        assert result.mode == PartitioningMode.AUTO
        assert result.n_blocks > 1
        assert result.n_vertices == 8 * result.n_blocks
        assert result.output_mesh.exists()
        assert fake_engine.post_processed == 0

        vertices, faces = load_mesh_bin(result.dense_reconstruction_bin)
        assert len(vertices) == result.n_vertices
        assert len(faces) == result.n_faces
        assert result.pts_cams_bin.name == PTS_CAMS_BIN

    def test_plan_cache_is_reused(self, tmp_path, provider):
        config = _config(tmp_path, partitioning=PartitioningMode.AUTO,
                         max_pts=600, max_pts_per_voxel=300)
        first = LargeScaleMeshingPipeline(config, provider, engine=FakeEngine()).run()

        cache = config.tmp_dir / config.base_dir_name / PLAN_CACHE_FILENAME
        assert cache.exists()
        second = LargeScaleMeshingPipeline(config, provider, engine=FakeEngine()).run()
        assert second.n_blocks == first.n_blocks
        assert second.n_vertices == first.n_vertices

    def test_blocks_within_budget(self, tmp_path, provider, fake_engine):
        config = _config(tmp_path, partitioning=PartitioningMode.AUTO,
                         max_pts=600, max_pts_per_voxel=300)
        LargeScaleMeshingPipeline(config, provider, engine=fake_engine).run()

        for request in fake_engine.requests:
            assert request.block.track_estimate <= 600

    def test_empty_space_between_clusters(self, tmp_path):
        config = _config(tmp_path, partitioning=PartitioningMode.AUTO,
                         max_pts=1500, max_pts_per_voxel=200)
        engine = TrackMeshEngine()
        result = LargeScaleMeshingPipeline(config, TwoClusterProvider(), engine=engine).run()

        assert len(engine.requests) < result.n_blocks
        assert all(request.block.track_estimate > 0 for request in engine.requests)
        assert result.n_vertices > 0
        assert result.output_mesh.exists()


class TestSingleBlockMode:
    def test_run(self, tmp_path, provider, fake_engine):
        config = _config(tmp_path, max_pts=10 ** 6)
        result = LargeScaleMeshingPipeline(config, provider, engine=fake_engine).run()

        assert result.mode == PartitioningMode.SINGLE_BLOCK
        assert result.n_blocks == 1
        assert fake_engine.post_processed == 1
        assert fake_engine.requests[0].neighbors == []
        assert result.statistics['resolution'] == 64

    def test_space_of_each_resolution_is_saved(self, tmp_path, provider):
        config = _config(tmp_path, grid_level0=1024, max_pts=10 ** 6)
        LargeScaleMeshingPipeline(config, provider, engine=FakeEngine()).run()

        space = load_space(config.output_dir / 'largeScaleMaxPts1024' / 'space.bin')
        assert space.resolution == 1024

    def test_resolution_is_lowered_to_fit(self, tmp_path, fake_engine):
        # About 0.92 * resolution track candidates: 1024 -> 512 (fast) -> 412 (slow)
        config = _config(tmp_path, grid_level0=1024, max_pts=400)
        result = LargeScaleMeshingPipeline(config, LineProvider(), engine=fake_engine).run()

        assert result.statistics['resolution'] == 412
        assert fake_engine.requests[0].block.track_estimate <= 400
        for name in ('largeScaleMaxPts1024', 'largeScaleMaxPts0512', 'largeScaleMaxPts0412'):
            assert (config.output_dir / name / 'space.bin').exists()

    def test_space_from_another_domain_is_reported(self, tmp_path, provider, fake_engine, caplog):
        config = _config(tmp_path, max_pts=10 ** 6)
        stale = config.output_dir / 'largeScaleMaxPts0064' / 'space.bin'
        stale.parent.mkdir(parents=True)
        save_space(stale, VoxelGrid(Hexahedron.from_bounds([-3, -3, -3], [3, 3, 3]), (1, 1, 1), 64))

        with caplog.at_level(logging.WARNING, logger="LargeScaleMeshing"):
            LargeScaleMeshingPipeline(config, provider, engine=fake_engine).run()

        assert "different domain" in caplog.text

    def test_space_of_the_same_domain_is_silent(self, tmp_path, provider, caplog):
        config = _config(tmp_path, max_pts=10 ** 6)
        LargeScaleMeshingPipeline(config, provider, engine=FakeEngine()).run()

        with caplog.at_level(logging.WARNING, logger="LargeScaleMeshing"):
            LargeScaleMeshingPipeline(config, provider, engine=FakeEngine()).run()

        assert "different domain" not in caplog.text

    def test_budget_cannot_be_met(self, tmp_path, provider, fake_engine):
        config = _config(tmp_path, grid_level0=1024, max_pts=1, min_grid_level=512)
        with pytest.raises(SizingSearchFailure):
            LargeScaleMeshingPipeline(config, provider, engine=fake_engine).run()
        assert fake_engine.requests == []

    def test_exclusion_removes_faces(self, tmp_path, provider, fake_engine):
        config = _config(tmp_path, max_pts=10 ** 6)
        everything = Hexahedron.from_bounds([-100, -100, -100], [100, 100, 100])
        pipeline = LargeScaleMeshingPipeline(config, provider, engine=fake_engine, exclusion=[everything])

        with pytest.raises(EmptyMeshError):
            pipeline.run()


class TestFailures:
    def test_undefined_mode_fails_before_any_work(self, tmp_path, provider, fake_engine):
        config = _config(tmp_path, partitioning=PartitioningMode.UNDEFINED)
        with pytest.raises(InvalidPartitioningMode):
            LargeScaleMeshingPipeline(config, provider, engine=fake_engine).run()

        assert not config.output_dir.exists()
        assert fake_engine.requests == []

    def test_unknown_surface_method_fails_before_any_work(self, tmp_path, provider):
        config = _config(tmp_path, surface_method='bogus')
        with pytest.raises(ConfigurationError):
            LargeScaleMeshingPipeline(config, provider).run()

        assert not config.output_dir.exists()

    @pytest.mark.parametrize("mode", [PartitioningMode.AUTO, PartitioningMode.SINGLE_BLOCK])
    def test_empty_mesh_writes_no_artifact(self, tmp_path, provider, mode):
        config = _config(tmp_path, partitioning=mode, max_pts=10 ** 6)
        with pytest.raises(EmptyMeshError):
            LargeScaleMeshingPipeline(config, provider, engine=FakeEngine(empty=True)).run()

        assert not (config.output_dir / DENSE_RECONSTRUCTION_BIN).exists()
        assert not (config.output_dir / 'mesh.obj').exists()
        assert not (config.output_dir / PTS_CAMS_BIN).exists()


def test_statistics(tmp_path, provider, fake_engine):
    config = _config(tmp_path, max_pts=10 ** 6)
    result = LargeScaleMeshingPipeline(config, provider, engine=fake_engine).run()

    stats = result.statistics
    assert stats['num_cameras'] == 8
    assert stats['num_tracks'] == 1200
    assert set(stats['processing_time']) == {'space', 'planning', 'reconstruction', 'saving'}
    assert np.isfinite(stats['total_time'])
