"""
Depth Map Folder Provider

Implements ICameraTrackProvider for per-camera depth map output.

Expected Input Structure:
    depthMapFolder/
    ├── cameras.json                 # Calibrated cameras
    ├── <id>_simMap.npy              # Optional per-pixel similarity
    └── ...
    depthMapFilterFolder/
    ├── <id>_depthMap.npy            # Filtered depth map of camera <id>
    └── ...

cameras.json holds a list of cameras, or {"cameras": [...]}, each with
id, K (3x3), R (3x3), t (3), width, height and an optional name.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from ...core.interfaces import ICameraTrackProvider
from ...core.structures import Camera, TrackSet
from ...errors import ConfigurationError

CAMERAS_FILENAME = "cameras.json"
DEPTH_MAP_SUFFIX = "_depthMap.npy"
SIM_MAP_SUFFIX = "_simMap.npy"


class DepthMapFolderProvider(ICameraTrackProvider):
    """
    Tracks back-projected from filtered depth maps.

    Every sampled depth pixel becomes one track. A track is supported by
    its source camera and by every other camera whose depth map agrees
    with it at the projected pixel (relative tolerance `depth_tolerance`).
    """

    def __init__(self,
                 depth_map_folder: Union[str, Path],
                 depth_map_filter_folder: Union[str, Path],
                 cameras_file: Optional[Union[str, Path]] = None,
                 pixel_step: int = 4,
                 depth_tolerance: float = 0.01):
        self.depth_map_folder = Path(depth_map_folder)
        self.depth_map_filter_folder = Path(depth_map_filter_folder)
        self.cameras_file = Path(cameras_file) if cameras_file else self.depth_map_folder / CAMERAS_FILENAME
        self.pixel_step = max(int(pixel_step), 1)
        self.depth_tolerance = depth_tolerance
        self.logger = logging.getLogger("LargeScaleMeshing.Provider")

        self._validate_structure()
        self._cameras = self._load_cameras()
        self._depth_maps: Dict[int, np.ndarray] = {}

        self.logger.info(
            f"✓ DepthMapFolderProvider: {len(self._cameras)} cameras from {self.cameras_file}"
        )

    def _validate_structure(self):
        for folder in (self.depth_map_folder, self.depth_map_filter_folder):
            if not folder.is_dir():
                raise ConfigurationError(f"Depth map folder not found: {folder}")
        if not self.cameras_file.is_file():
            raise ConfigurationError(f"Camera file not found: {self.cameras_file}")

    def _load_cameras(self) -> List[Camera]:
        try:
            with open(self.cameras_file, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read camera file {self.cameras_file}: {e}") from e

        entries = data.get('cameras', []) if isinstance(data, dict) else data
        cameras = []
        for entry in entries:
            try:
                cameras.append(Camera(
                    id=int(entry['id']),
                    K=entry['K'],
                    R=entry['R'],
                    t=entry['t'],
                    width=int(entry['width']),
                    height=int(entry['height']),
                    name=str(entry.get('name', '')),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid camera entry in {self.cameras_file}: {e}") from e

        if not cameras:
            raise ConfigurationError(f"No camera in {self.cameras_file}")
        return cameras

    def get_cameras(self) -> List[Camera]:
        return list(self._cameras)

    def depth_map(self, camera: Camera) -> Optional[np.ndarray]:
        """Filtered depth map of a camera, None if it has none"""
        if camera.id not in self._depth_maps:
            path = self.depth_map_filter_folder / f"{camera.id}{DEPTH_MAP_SUFFIX}"
            if not path.is_file():
                self.logger.warning(f"No depth map for camera {camera.id}: {path}")
                return None
            self._depth_maps[camera.id] = np.load(path)
        return self._depth_maps[camera.id]

    def sim_map(self, camera: Camera) -> Optional[np.ndarray]:
        path = self.depth_map_folder / f"{camera.id}{SIM_MAP_SUFFIX}"
        return np.load(path) if path.is_file() else None

    def get_tracks(self, sim_threshold: Optional[float] = None) -> TrackSet:
        """
        Back-project every camera depth map.

        Args:
            sim_threshold: Samples whose similarity is above it are dropped
                (lower is better). Ignored for cameras without a similarity map.
        """
        points, cameras_per_track = [], []

        for camera in self._cameras:
            depth = self.depth_map(camera)
            if depth is None:
                continue

            mask = None
            if sim_threshold is not None:
                sim = self.sim_map(camera)
                if sim is not None:
                    mask = sim <= sim_threshold

            cam_points = camera.back_project(depth, self.pixel_step, mask)
            support = self._supporting_cameras(camera, cam_points)

            points.append(cam_points)
            cameras_per_track.extend(support)
            self.logger.debug(f"Camera {camera.id}: {len(cam_points):,} samples")

        if not points:
            return TrackSet.empty()

        tracks = TrackSet.from_lists(np.concatenate(points), cameras_per_track)
        self.logger.info(f"✓ {len(tracks):,} tracks from {len(self._cameras)} depth maps")
        return tracks

    def _supporting_cameras(self, source: Camera, points: np.ndarray) -> List[List[int]]:
        support = [[source.id] for _ in range(len(points))]
        if len(points) == 0:
            return support

        for other in self._cameras:
            if other.id == source.id:
                continue
            depth = self.depth_map(other)
            if depth is None:
                continue

            agrees = self._depth_agreement(other, depth, points)
            for index in np.flatnonzero(agrees):
                support[index].append(other.id)

        return [sorted(s) for s in support]

    def _depth_agreement(self, camera: Camera, depth: np.ndarray, points: np.ndarray) -> np.ndarray:
        cam_points = points @ camera.R.T + camera.t
        z = cam_points[:, 2]
        in_front = z > 0

        projected = cam_points @ camera.K.T
        with np.errstate(divide='ignore', invalid='ignore'):
            cols = np.round(projected[:, 0] / projected[:, 2])
            rows = np.round(projected[:, 1] / projected[:, 2])

        height, width = depth.shape
        visible = in_front & (cols >= 0) & (cols < width) & (rows >= 0) & (rows < height)

        agrees = np.zeros(len(points), dtype=bool)
        idx = np.flatnonzero(visible)
        observed = depth[rows[idx].astype(np.int64), cols[idx].astype(np.int64)]
        valid = np.isfinite(observed) & (observed > 0)
        agrees[idx[valid]] = np.abs(observed[valid] - z[idx[valid]]) <= self.depth_tolerance * z[idx[valid]]
        return agrees
