"""
Partition Planning
==================

Auto mode: group the voxels of the coarse grid into blocks whose track-count
estimate fits a per-block budget. The plan is cached as the corners of its
blocks (hexahsToReconstruct.bin) and reused verbatim when the file exists.
"""

from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from ..core.structures import (
    Block, Hexahedron, PartitioningMode, ReconstructionPlan, VoxelGrid, VoxelRange,
)
from ..errors import PersistenceError, SizingSearchFailure
from ..io.binary_io import load_points, save_points
from ..logger import get_logger
from ..space.track_estimator import TrackCountEstimator

PLAN_CACHE_FILENAME = "hexahsToReconstruct.bin"


def _split_range(voxel_range: VoxelRange) -> Tuple[VoxelRange, VoxelRange]:
    """Split the longest index interval at its midpoint (first axis on ties)"""
    sizes = [hi - lo for lo, hi in voxel_range]
    axis = int(np.argmax(sizes))
    lo, hi = voxel_range[axis]
    mid = lo + sizes[axis] // 2

    low = list(voxel_range)
    high = list(voxel_range)
    low[axis] = (lo, mid)
    high[axis] = (mid, hi)
    return tuple(low), tuple(high)


class PartitionPlanner:
    """
    Reconstruction plan computation with a durable cache.

    The grid is split by recursive bisection: a voxel box is accepted when
    its estimate fits the budget, otherwise its longest side is halved.
    Boxes are visited depth-first, lower half first, so the block order is
    deterministic and the accepted boxes tile the grid exactly once.
    """

    def __init__(self, voxel_grid: VoxelGrid, estimator: TrackCountEstimator,
                 cache_path: Optional[Union[str, Path]] = None):
        self.voxel_grid = voxel_grid
        self.estimator = estimator
        self.cache_path = Path(cache_path) if cache_path is not None else None
        self.logger = get_logger("Planning")

    def plan(self, max_pts: int) -> ReconstructionPlan:
        """
        Get the reconstruction plan, from the cache when it exists.

        Args:
            max_pts: Per-block track budget

        Raises:
            SizingSearchFailure: If a single voxel exceeds the budget
            PersistenceError: If the cache cannot be read or written
        """
        if self.cache_path is not None and self.cache_path.exists():
            self.logger.info(f"Voxels array already computed, reload from file: {self.cache_path}")
            self.logger.warning(
                "Cached plan is reused as is: changes of budget or domain are not detected"
            )
            hexahedra = load_points(self.cache_path)
            blocks = self.blocks_from_hexahedra(hexahedra)
            self.logger.info(f"✓ Loaded plan with {len(blocks)} blocks")
            return ReconstructionPlan(blocks, PartitioningMode.AUTO,
                                      cache_path=self.cache_path, from_cache=True)

        self.logger.info("Compute voxels array")
        ranges = self.compute_ranges(max_pts)
        blocks = self._build_blocks([r for r, _ in ranges],
                                    estimates=[e for _, e in ranges])
        plan = ReconstructionPlan(blocks, PartitioningMode.AUTO, cache_path=self.cache_path)

        if self.cache_path is not None:
            save_points(self.cache_path, plan.hexahedra())
            self.logger.info(f"✓ Plan saved to {self.cache_path}")

        self.logger.info(f"✓ Plan computed: {len(blocks)} blocks for {self.voxel_grid.n_voxels} voxels")
        return plan

    def compute_ranges(self, max_pts: int) -> List[Tuple[VoxelRange, int]]:
        """Voxel boxes of the plan with their estimates, in plan order"""
        resolution = self.voxel_grid.resolution
        accepted: List[Tuple[VoxelRange, int]] = []
        stack: List[VoxelRange] = [self.voxel_grid.full_range]

        while stack:
            voxel_range = stack.pop()
            estimate = self.estimator.estimate(resolution, self.voxel_grid, voxel_range)
            if estimate <= max_pts:
                accepted.append((voxel_range, estimate))
                continue

            if all(hi - lo == 1 for lo, hi in voxel_range):
                raise SizingSearchFailure(
                    f"Voxel {tuple(lo for lo, _ in voxel_range)} holds {estimate:,} tracks, "
                    f"more than the per-block budget {max_pts:,}"
                )

            low, high = _split_range(voxel_range)
            stack.append(high)
            stack.append(low)

        return accepted

    def blocks_from_hexahedra(self, hexahedra: np.ndarray) -> List[Block]:
        """Rebuild blocks from cached corners (8 points per block)"""
        hexahedra = np.asarray(hexahedra, dtype=np.float64).reshape(-1, 3)
        if len(hexahedra) % 8 != 0:
            raise PersistenceError(
                f"Plan cache holds {len(hexahedra)} points, not a multiple of 8"
            )

        dims = np.asarray(self.voxel_grid.dimensions)
        ranges = []
        cached = []
        for corners in hexahedra.reshape(-1, 8, 3):
            local = self.voxel_grid.domain.to_local(corners[[0, 6]])
            lo = np.clip(np.rint(local[0] * dims).astype(int), 0, dims - 1)
            hi = np.clip(np.rint(local[1] * dims).astype(int), lo + 1, dims)
            ranges.append(tuple((int(a), int(b)) for a, b in zip(lo, hi)))
            cached.append(Hexahedron(corners))

        return self._build_blocks(ranges, hexahedra=cached)

    def _build_blocks(self, ranges: Sequence[VoxelRange],
                      estimates: Optional[Sequence[int]] = None,
                      hexahedra: Optional[Sequence[Hexahedron]] = None) -> List[Block]:
        tracks = self.estimator.tracks
        names = [f"block{i:04d}" for i in range(len(ranges))]

        blocks = []
        for i, voxel_range in enumerate(ranges):
            hexahedron = hexahedra[i] if hexahedra is not None else self.voxel_grid.range_hexahedron(voxel_range)
            cameras = tracks.cameras_in(self.estimator.region_mask(self.voxel_grid, voxel_range))
            blocks.append(Block(
                name=names[i],
                hexahedron=hexahedron,
                voxel_range=voxel_range,
                camera_ids=tuple(int(c) for c in cameras),
                track_estimate=estimates[i] if estimates is not None else None,
            ))

        # Neighbors: boxes sharing a face, an edge or a corner
        return [replace(block, neighbors=tuple(other.name for other in blocks if block.touches(other)))
                for block in blocks]


def single_block_plan(voxel_grid: VoxelGrid, estimator: TrackCountEstimator,
                      track_estimate: Optional[int] = None) -> ReconstructionPlan:
    """Plan made of one block equal to the whole domain"""
    cameras = estimator.tracks.cameras_in(estimator.region_mask(voxel_grid))
    block = Block(
        name="root",
        hexahedron=voxel_grid.domain,
        voxel_range=voxel_grid.full_range,
        camera_ids=tuple(int(c) for c in cameras),
        track_estimate=track_estimate,
    )
    return ReconstructionPlan([block], PartitioningMode.SINGLE_BLOCK)
