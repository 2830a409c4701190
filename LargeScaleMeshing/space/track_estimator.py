"""
Track Count Estimation
======================

Cheap approximation of how many tracks a region yields at a given grid
resolution: tracks are snapped to a lattice of `resolution` cells per axis
over the domain and every occupied (voxel, lattice cell) pair counts once.
Finer resolutions merge fewer tracks, so the estimate grows with resolution.
"""

from typing import Dict, Optional, Tuple

import numpy as np

from ..core.structures import Hexahedron, TrackSet, VoxelGrid, VoxelRange
from ..logger import get_logger


class TrackCountEstimator:
    """
    Track-count estimates over a fixed track set and domain.

    Lattice keys and voxel indices are memoized per resolution / grid
    dimensions, since the resolution search and the partition planner query
    the same configuration many times.
    """

    def __init__(self, tracks: TrackSet, domain: Hexahedron):
        self.tracks = tracks
        self.domain = domain
        self.logger = get_logger("Space")

        uvw = domain.to_local(tracks.points) if len(tracks) else np.zeros((0, 3))
        self._inside = np.all((uvw >= 0.0) & (uvw <= 1.0), axis=1)
        self._inside_idx = np.flatnonzero(self._inside)
        self._uvw = uvw[self._inside]

        self._keys_cache: Dict[int, np.ndarray] = {}
        self._voxel_cache: Dict[Tuple[int, int, int], np.ndarray] = {}

        outside = len(tracks) - len(self._inside_idx)
        if outside:
            self.logger.debug(f"{outside} tracks lie outside the domain and are ignored")

    @property
    def n_tracks_inside(self) -> int:
        return len(self._inside_idx)

    def lattice_keys(self, resolution: int) -> np.ndarray:
        """Lattice cell key of every track inside the domain"""
        resolution = int(resolution)
        if resolution <= 0:
            raise ValueError(f"Resolution must be positive, got {resolution}")

        keys = self._keys_cache.get(resolution)
        if keys is None:
            cells = np.clip(np.floor(self._uvw * resolution), 0, resolution - 1).astype(np.int64)
            keys = (cells[:, 0] * resolution + cells[:, 1]) * resolution + cells[:, 2]
            self._keys_cache[resolution] = keys
        return keys

    def voxel_indices(self, voxel_grid: VoxelGrid) -> np.ndarray:
        """(N_inside, 3) voxel indices of the tracks inside the domain"""
        dims = voxel_grid.dimensions
        indices = self._voxel_cache.get(dims)
        if indices is None:
            dims_arr = np.asarray(dims)
            indices = np.clip(np.floor(self._uvw * dims_arr), 0, dims_arr - 1).astype(np.int64)
            self._voxel_cache[dims] = indices
        return indices

    def _range_mask(self, voxel_grid: VoxelGrid, voxel_range: VoxelRange) -> np.ndarray:
        indices = self.voxel_indices(voxel_grid)
        mask = np.ones(len(indices), dtype=bool)
        for axis, (lo, hi) in enumerate(voxel_range):
            mask &= (indices[:, axis] >= lo) & (indices[:, axis] < hi)
        return mask

    def region_mask(self, voxel_grid: VoxelGrid, voxel_range: Optional[VoxelRange] = None) -> np.ndarray:
        """Boolean mask over all tracks selecting those inside a voxel range"""
        mask = np.zeros(len(self.tracks), dtype=bool)
        if voxel_range is None:
            mask[self._inside_idx] = True
        else:
            mask[self._inside_idx[self._range_mask(voxel_grid, voxel_range)]] = True
        return mask

    def _pair_keys(self, resolution: int, voxel_grid: VoxelGrid) -> np.ndarray:
        keys = self.lattice_keys(resolution)
        indices = self.voxel_indices(voxel_grid)
        flat = np.ravel_multi_index(indices.T, voxel_grid.dimensions) if len(indices) else np.zeros(0, np.int64)
        return np.stack([flat, keys], axis=1)

    def estimate(self, resolution: int, voxel_grid: Optional[VoxelGrid] = None,
                 voxel_range: Optional[VoxelRange] = None) -> int:
        """
        Estimate the number of tracks.

        Args:
            resolution: Lattice cells per domain axis
            voxel_grid: Optional voxel grid; lattice cells straddling voxel
                        boundaries then count once per voxel
            voxel_range: Optional box of voxel indices restricting the region
                         (requires voxel_grid)

        Returns:
            Non-negative track-count estimate
        """
        if voxel_grid is None:
            if voxel_range is not None:
                raise ValueError("voxel_range requires a voxel_grid")
            return int(np.unique(self.lattice_keys(resolution)).size)

        pairs = self._pair_keys(resolution, voxel_grid)
        if voxel_range is not None:
            pairs = pairs[self._range_mask(voxel_grid, voxel_range)]
        if len(pairs) == 0:
            return 0
        return int(np.unique(pairs, axis=0).shape[0])

    def per_voxel_estimates(self, voxel_grid: VoxelGrid, resolution: Optional[int] = None) -> np.ndarray:
        """Estimate of every voxel, shaped like the grid dimensions"""
        resolution = voxel_grid.resolution if resolution is None else resolution
        pairs = self._pair_keys(resolution, voxel_grid)
        if len(pairs) == 0:
            return np.zeros(voxel_grid.dimensions, dtype=np.int64)
        unique_pairs = np.unique(pairs, axis=0)
        counts = np.bincount(unique_pairs[:, 0], minlength=voxel_grid.n_voxels)
        return counts.reshape(voxel_grid.dimensions)
