"""
Spatial Domain Estimation
=========================

Computes the reconstruction volume (8 corners) from camera and track
statistics, and the initial coarse voxel grid over it.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..core.interfaces import ICameraTrackProvider
from ..core.structures import Camera, Hexahedron, TrackSet, VoxelGrid
from ..errors import ConfigurationError
from ..logger import get_logger
from .track_estimator import TrackCountEstimator


@dataclass
class SpaceEstimate:
    """Domain of a run with the data it was computed from"""
    domain: Hexahedron
    tracks: TrackSet
    cameras: List[Camera]


class SpatialDomainEstimator:
    """
    Reconstruction volume estimation.

    The domain is the percentile-trimmed extent of the tracks (optionally
    expressed in their principal axes), enlarged by a relative margin. When
    no track is available the camera centers are used instead.
    """

    def __init__(self,
                 margin_coef: float = 0.05,
                 percentile: float = 0.5,
                 oriented: bool = False,
                 max_voxels_per_axis: int = 64):
        """
        Args:
            margin_coef: Margin added on each side, relative to the extent
            percentile: Percentage of tracks trimmed on each side per axis
            oriented: Align the domain with the principal axes of the tracks
            max_voxels_per_axis: Cap on the initial grid subdivision
        """
        if not 0.0 <= percentile < 50.0:
            raise ConfigurationError(f"Domain percentile must be in [0, 50), got {percentile}")
        self.margin_coef = margin_coef
        self.percentile = percentile
        self.oriented = oriented
        self.max_voxels_per_axis = max_voxels_per_axis
        self.logger = get_logger("Space")

    def estimate_from(self, provider: ICameraTrackProvider,
                      sim_threshold: Optional[float] = None) -> SpaceEstimate:
        """Load cameras and tracks from a provider and estimate the domain"""
        cameras = provider.get_cameras()
        tracks = provider.get_tracks(sim_threshold)
        self.logger.info(f"Loaded {len(cameras)} cameras, {len(tracks):,} track candidates")
        domain = self.estimate(tracks, cameras)
        return SpaceEstimate(domain=domain, tracks=tracks, cameras=cameras)

    def estimate(self, tracks: TrackSet, cameras: List[Camera]) -> Hexahedron:
        """
        Estimate the spatial domain.

        Raises:
            ConfigurationError: If there is neither a track nor a camera
        """
        if len(tracks) > 0:
            points = tracks.points
            percentile = self.percentile
        elif cameras:
            self.logger.warning("No track available, domain estimated from camera centers")
            points = np.array([c.center for c in cameras])
            percentile = 0.0
        else:
            raise ConfigurationError("Cannot estimate the reconstruction domain: no track and no camera")

        if self.oriented and len(points) >= 3:
            center = points.mean(axis=0)
            _, _, vt = np.linalg.svd(points - center, full_matrices=False)
            if np.linalg.det(vt) < 0:
                vt[2] = -vt[2]
            rotation = vt
        else:
            center = np.zeros(3)
            rotation = np.eye(3)

        local = (points - center) @ rotation.T
        lower = np.percentile(local, percentile, axis=0)
        upper = np.percentile(local, 100.0 - percentile, axis=0)

        extent = upper - lower
        min_extent = max(float(extent.max()) * 0.01, 1e-3)
        pad = np.maximum(min_extent - extent, 0.0) / 2.0
        lower -= pad
        upper += pad
        extent = upper - lower

        lower -= extent * self.margin_coef
        upper += extent * self.margin_coef

        origin = center + lower @ rotation
        axes = (upper - lower)[:, None] * rotation
        domain = Hexahedron.from_frame(origin, axes)

        self.logger.info(
            f"Domain: origin={np.round(origin, 4).tolist()}, "
            f"extent={np.round(upper - lower, 4).tolist()}"
            + (" (oriented)" if self.oriented else "")
        )
        return domain

    def initial_grid(self, domain: Hexahedron, estimator: TrackCountEstimator,
                     max_pts_per_voxel: int, resolution: int) -> VoxelGrid:
        """
        Generate the coarse voxel grid of the space.

        Starting from a single voxel, the voxel count along the longest voxel
        edge is doubled until every voxel estimate fits `max_pts_per_voxel`
        or the per-axis cap is reached.
        """
        dims = [1, 1, 1]
        while True:
            grid = VoxelGrid(domain, tuple(dims), resolution)
            counts = estimator.per_voxel_estimates(grid)
            worst = int(counts.max()) if counts.size else 0
            if worst <= max_pts_per_voxel:
                break

            voxel_edges = domain.edge_lengths / np.asarray(dims, dtype=np.float64)
            candidates = [a for a in range(3) if dims[a] < self.max_voxels_per_axis]
            if not candidates:
                over = int((counts > max_pts_per_voxel).sum())
                self.logger.warning(
                    f"Voxel cap reached ({self.max_voxels_per_axis} per axis): "
                    f"{over} voxels still exceed {max_pts_per_voxel:,} tracks"
                )
                break
            axis = max(candidates, key=lambda a: voxel_edges[a])
            dims[axis] = min(dims[axis] * 2, self.max_voxels_per_axis)

        self.logger.info(f"Voxel grid: {grid.dimensions} ({grid.n_voxels} voxels), resolution {resolution}")
        return grid
