"""
Base interfaces for the collaborators of the meshing orchestrator.

The orchestrator only depends on these contracts, so camera/track sources
and dense reconstruction engines can be swapped (folder-based, synthetic,
external binaries, ...).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import numpy as np

from .structures import Block, Camera, Hexahedron, LocalMeshResult, TrackSet, VoxelGrid


class ICameraTrackProvider(ABC):
    """
    Abstract interface for camera and point-track sources.

    Implementations load calibrated cameras and the candidate 3D points
    (tracks) derived from per-view depth maps.
    """

    @abstractmethod
    def get_cameras(self) -> List[Camera]:
        """
        Get all calibrated cameras.

        Returns:
            List[Camera]: Cameras sorted by id

        Raises:
            ConfigurationError: If the camera data is malformed
        """
        pass

    @abstractmethod
    def get_tracks(self, sim_threshold: Optional[float] = None) -> TrackSet:
        """
        Get candidate tracks.

        Args:
            sim_threshold: Optional similarity threshold; depth samples whose
                           similarity is above it are discarded

        Returns:
            TrackSet: Points with their supporting cameras
        """
        pass

    def get_camera_count(self) -> int:
        return len(self.get_cameras())


@dataclass
class BlockReconstructionRequest:
    """Everything the engine needs to reconstruct one block"""
    block: Block
    neighbors: List[Block]
    cameras: List[Camera]
    tracks: TrackSet
    working_dir: Path
    voxel_grid: VoxelGrid
    steps: np.ndarray
    exclusion: Optional[List[Hexahedron]] = None
    single_block: bool = False
    options: dict = field(default_factory=dict)

    @property
    def camera_ids(self) -> np.ndarray:
        return np.array([c.id for c in self.cameras], dtype=np.int32)


class IDenseReconstructionEngine(ABC):
    """
    Abstract interface for the dense reconstruction engine.

    One synchronous operation per block: block geometry + camera subset ->
    mesh + per-vertex camera list. Internal parallelism, if any, stays
    behind this call.
    """

    @abstractmethod
    def reconstruct_block(self, request: BlockReconstructionRequest) -> LocalMeshResult:
        """
        Reconstruct the surface inside one block.

        Args:
            request: Block geometry, neighbors, cameras and working directory

        Returns:
            LocalMeshResult: Mesh and per-vertex supporting cameras
        """
        pass

    def post_process(self, result: LocalMeshResult,
                     request: BlockReconstructionRequest) -> LocalMeshResult:
        """
        Regularize a block result using cross-camera consistency.

        Only called in single-block mode. The default keeps the result as is.
        """
        return result
