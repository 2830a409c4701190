"""
Tests for the resolution search and the partition planner.
"""

import numpy as np
import pytest

from LargeScaleMeshing.core.structures import PartitioningMode, TrackSet, VoxelGrid
from LargeScaleMeshing.errors import ConfigurationError, SizingSearchFailure
from LargeScaleMeshing.io.binary_io import load_points
from LargeScaleMeshing.planning import (
    PLAN_CACHE_FILENAME, GranularitySearchController, PartitionPlanner, next_resolution,
    single_block_plan,
)
from LargeScaleMeshing.space import TrackCountEstimator


# ======================================================================
# Resolution step rule
# ======================================================================

class TestNextResolution:
    def test_fast_downsample_halves(self):
        assert next_resolution(1024, 250, 100) == 512

    def test_slow_downsample_subtracts(self):
        assert next_resolution(512, 150, 100) == 412

    def test_ratio_of_exactly_two_is_fast(self):
        assert next_resolution(1000, 200, 100) == 500

    def test_odd_resolution_truncates(self):
        assert next_resolution(777, 1000, 100) == 388


# ======================================================================
# GranularitySearchController
# ======================================================================

class TestGranularitySearch:
    def test_worked_example(self):
        estimates = {1024: 250, 512: 150, 412: 90}
        result = GranularitySearchController(estimates.__getitem__, budget=100, start_resolution=1024).run()

        assert result.resolution == 412
        assert result.estimate == 90
        assert result.iterations == 3
        assert [r for r, _ in result.history] == [1024, 512, 412]

    def test_start_resolution_within_budget(self):
        result = GranularitySearchController(lambda res: 10, budget=100, start_resolution=1024).run()
        assert result.resolution == 1024
        assert result.iterations == 1

    @pytest.mark.parametrize("budget", [1500, 3000, 5000, 100000])
    def test_converges_for_monotone_estimates(self, budget):
        estimate_fn = lambda res: res * 10  # noqa: E731
        result = GranularitySearchController(estimate_fn, budget=budget, start_resolution=1024).run()

        assert result.estimate <= budget
        for res, est in result.history[:-1]:
            assert est > budget

    def test_failure_under_the_floor(self):
        controller = GranularitySearchController(lambda res: 10 ** 9, budget=100,
                                                 start_resolution=1024, min_resolution=16)
        with pytest.raises(SizingSearchFailure):
            controller.run()

    def test_start_below_floor(self):
        controller = GranularitySearchController(lambda res: 0, budget=100,
                                                 start_resolution=8, min_resolution=16)
        with pytest.raises(SizingSearchFailure):
            controller.run()

    def test_on_step_sees_every_resolution(self):
        seen = []
        estimates = {1024: 250, 512: 150, 412: 90}
        GranularitySearchController(estimates.__getitem__, budget=100, start_resolution=1024,
                                    on_step=seen.append).run()
        assert seen == [1024, 512, 412]

    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            GranularitySearchController(lambda res: 0, budget=0, start_resolution=1024)
        with pytest.raises(ConfigurationError):
            GranularitySearchController(lambda res: 0, budget=10, start_resolution=0)

    def test_with_track_estimator(self, random_tracks, unit_domain):
        estimator = TrackCountEstimator(random_tracks, unit_domain)
        grid = VoxelGrid(unit_domain, (1, 1, 1), 1024)
        result = GranularitySearchController(
            lambda res: estimator.estimate(res, grid.with_resolution(res)),
            budget=600,
            start_resolution=1024,
        ).run()

        assert result.estimate <= 600
        assert result.estimate == estimator.estimate(result.resolution)


# ======================================================================
# PartitionPlanner
# ======================================================================

@pytest.fixture
def grid(unit_domain):
    return VoxelGrid(unit_domain, (4, 4, 4), 64)


def _coverage(plan, grid):
    counts = np.zeros(grid.dimensions, dtype=int)
    for block in plan:
        (i0, i1), (j0, j1), (k0, k1) = block.voxel_range
        counts[i0:i1, j0:j1, k0:k1] += 1
    return counts


class TestPartitionPlanner:
    def test_every_voxel_in_exactly_one_block(self, clustered_tracks, grid):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        plan = PartitionPlanner(grid, estimator).plan(max_pts=2400)

        assert plan.mode == PartitioningMode.AUTO
        assert (_coverage(plan, grid) == 1).all()
        assert sum(b.n_voxels for b in plan) == grid.n_voxels

    def test_every_block_fits_the_budget(self, clustered_tracks, grid):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        plan = PartitionPlanner(grid, estimator).plan(max_pts=2400)

        assert len(plan) > 1
        for block in plan:
            assert block.track_estimate <= 2400
            assert estimator.estimate(grid.resolution, grid, block.voxel_range) == block.track_estimate

    def test_whole_grid_when_it_fits(self, random_tracks, grid):
        estimator = TrackCountEstimator(random_tracks, grid.domain)
        plan = PartitionPlanner(grid, estimator).plan(max_pts=10 ** 6)

        assert len(plan) == 1
        assert plan.blocks[0].voxel_range == grid.full_range
        assert plan.blocks[0].neighbors == ()

    def test_deterministic_order(self, clustered_tracks, grid):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        first = PartitionPlanner(grid, estimator).plan(max_pts=2400)
        second = PartitionPlanner(grid, estimator).plan(max_pts=2400)
        assert [b.voxel_range for b in first] == [b.voxel_range for b in second]
        assert [b.name for b in first] == [f"block{i:04d}" for i in range(len(first))]

    def test_neighbors_are_symmetric(self, clustered_tracks, grid):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        plan = PartitionPlanner(grid, estimator).plan(max_pts=2400)

        for block in plan:
            for neighbor in plan.neighbors_of(block):
                assert block.name in neighbor.neighbors

    def test_blocks_carry_their_cameras(self, clustered_tracks, grid):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        plan = PartitionPlanner(grid, estimator).plan(max_pts=2400)

        for block in plan:
            mask = estimator.region_mask(grid, block.voxel_range)
            assert list(block.camera_ids) == clustered_tracks.cameras_in(mask).tolist()

    def test_single_voxel_over_budget(self, unit_domain):
        rng = np.random.default_rng(0)
        points = rng.uniform(0.0, 0.2, size=(2000, 3))
        estimator = TrackCountEstimator(TrackSet.from_lists(points, [[0]] * 2000), unit_domain)
        grid = VoxelGrid(unit_domain, (4, 4, 4), 1024)

        with pytest.raises(SizingSearchFailure):
            PartitionPlanner(grid, estimator).plan(max_pts=100)


class TestPlanCache:
    def test_cache_is_written(self, clustered_tracks, grid, tmp_path):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        cache = tmp_path / PLAN_CACHE_FILENAME
        plan = PartitionPlanner(grid, estimator, cache_path=cache).plan(max_pts=2400)

        assert cache.exists()
        assert load_points(cache).shape == (8 * len(plan), 3)
        assert not plan.from_cache

    def test_reload_gives_the_same_plan(self, clustered_tracks, grid, tmp_path):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        cache = tmp_path / PLAN_CACHE_FILENAME
        computed = PartitionPlanner(grid, estimator, cache_path=cache).plan(max_pts=2400)
        reloaded = PartitionPlanner(grid, estimator, cache_path=cache).plan(max_pts=2400)

        assert reloaded.from_cache
        assert [b.voxel_range for b in reloaded] == [b.voxel_range for b in computed]
        assert [b.hexahedron for b in reloaded] == [b.hexahedron for b in computed]
        assert [b.neighbors for b in reloaded] == [b.neighbors for b in computed]
        np.testing.assert_array_equal(reloaded.hexahedra(), computed.hexahedra())

    def test_cache_is_reused_even_if_budget_changed(self, clustered_tracks, grid, tmp_path):
        estimator = TrackCountEstimator(clustered_tracks, grid.domain)
        cache = tmp_path / PLAN_CACHE_FILENAME
        computed = PartitionPlanner(grid, estimator, cache_path=cache).plan(max_pts=2400)
        reloaded = PartitionPlanner(grid, estimator, cache_path=cache).plan(max_pts=10 ** 6)

        assert len(reloaded) == len(computed)


# ======================================================================
# Single block
# ======================================================================

class TestSingleBlockPlan:
    def test_one_block_equal_to_the_domain(self, random_tracks, unit_domain):
        grid = VoxelGrid(unit_domain, (2, 2, 2), 512)
        estimator = TrackCountEstimator(random_tracks, unit_domain)
        plan = single_block_plan(grid, estimator, track_estimate=123)

        assert plan.mode == PartitioningMode.SINGLE_BLOCK
        assert len(plan) == 1
        block = plan.blocks[0]
        assert block.hexahedron == unit_domain
        assert block.neighbors == ()
        assert block.track_estimate == 123
        assert list(block.camera_ids) == random_tracks.camera_ids.tolist()
