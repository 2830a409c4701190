"""
Synthetic provider for testing and prototyping.

Generates a deterministic scene (a sphere resting on a ground plane)
observed by a ring of cameras, without any depth map on disk.
"""

import logging
from typing import List, Optional

import numpy as np

from ...core.interfaces import ICameraTrackProvider
from ...core.structures import Camera, TrackSet


class SyntheticProvider(ICameraTrackProvider):
    """
    Synthetic camera/track provider.

    Useful for:
    - Unit testing
    - Benchmarking the planner on a known point density
    """

    def __init__(self,
                 num_cameras: int = 12,
                 sphere_points: int = 4000,
                 plane_points: int = 2000,
                 radius: float = 1.0,
                 noise: float = 0.0,
                 seed: Optional[int] = 0):
        self.num_cameras = num_cameras
        self.sphere_points = sphere_points
        self.plane_points = plane_points
        self.radius = radius
        self.noise = noise
        self.rng = np.random.default_rng(seed)
        self.logger = logging.getLogger("LargeScaleMeshing.Provider")

        self._cameras = self._generate_cameras()
        self._tracks = self._generate_tracks()

        self.logger.info(
            f"✓ SyntheticProvider: {len(self._cameras)} cameras, {len(self._tracks):,} tracks"
        )

    def _generate_cameras(self) -> List[Camera]:
        K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
        distance = 4.0 * self.radius
        cameras = []

        for i in range(self.num_cameras):
            angle = 2.0 * np.pi * i / self.num_cameras
            center = np.array([distance * np.cos(angle), distance * np.sin(angle), self.radius])

            # Look at the sphere center, y axis pointing down
            forward = -center / np.linalg.norm(center)
            right = np.cross(forward, [0.0, 0.0, 1.0])
            right /= np.linalg.norm(right)
            down = np.cross(forward, right)
            R = np.stack([right, down, forward])

            cameras.append(Camera(id=i, K=K, R=R, t=-R @ center, width=640, height=480,
                                  name=f"synthetic_{i:04d}"))
        return cameras

    def _generate_tracks(self) -> TrackSet:
        directions = self.rng.normal(size=(self.sphere_points, 3))
        directions /= np.linalg.norm(directions, axis=1, keepdims=True)
        sphere = directions * self.radius + np.array([0.0, 0.0, self.radius])

        extent = 2.0 * self.radius
        plane = np.column_stack([
            self.rng.uniform(-extent, extent, self.plane_points),
            self.rng.uniform(-extent, extent, self.plane_points),
            np.zeros(self.plane_points),
        ])

        points = np.concatenate([sphere, plane])
        if self.noise > 0:
            points = points + self.rng.normal(scale=self.noise, size=points.shape)

        return TrackSet.from_lists(points, [self._facing_cameras(p) for p in points])

    def _facing_cameras(self, point: np.ndarray) -> List[int]:
        """Cameras on the same side as the point, at least one"""
        centers = np.array([c.center for c in self._cameras])
        offset = point[:2]
        if np.linalg.norm(offset) < 1e-9:
            return [c.id for c in self._cameras]
        facing = centers[:, :2] @ offset > 0
        ids = [c.id for c, f in zip(self._cameras, facing) if f]
        return ids or [self._cameras[0].id]

    def get_cameras(self) -> List[Camera]:
        return list(self._cameras)

    def get_tracks(self, sim_threshold: Optional[float] = None) -> TrackSet:
        return self._tracks
