"""
Large-Scale Meshing Module
==========================

Builds one triangle mesh of a scene from calibrated cameras and filtered
depth maps, splitting the reconstruction volume so that no block exceeds
a track budget:
- Single-block mode: lower the lattice resolution until the whole domain fits
- Auto mode: recursive partition of a coarse voxel grid, one mesh per block
- Open3D surface extraction per block, merged into one OBJ

Architecture:
    core/            - Geometry, plan and mesh structures, provider/engine interfaces
    space/           - Domain estimation and track-count estimates
    planning/        - Resolution search and partition planning
    reconstruction/  - Per-block dispatch and merge
    engines/         - Dense reconstruction engines
    mesh/            - Mesh post-processing
    io/              - Binary artifacts and mesh export
    data/            - Camera and track providers

Example:
    >>> from LargeScaleMeshing import LargeScaleMeshingPipeline, MeshingConfig, PartitioningMode
    >>> from LargeScaleMeshing.data import SyntheticProvider
    >>>
    >>> config = MeshingConfig(output_mesh='./out/mesh.obj', partitioning=PartitioningMode.AUTO)
    >>> result = LargeScaleMeshingPipeline(config, SyntheticProvider(seed=0)).run()
"""

from .config import MeshingConfig, MeshingSettings
from .core.structures import PartitioningMode, MeshingResult
from .errors import (
    MeshingError,
    ConfigurationError,
    InvalidPartitioningMode,
    SizingSearchFailure,
    EmptyMeshError,
    PersistenceError,
)
from .pipeline import LargeScaleMeshingPipeline

__version__ = "1.0.0"
__all__ = [
    'LargeScaleMeshingPipeline',
    'MeshingConfig',
    'MeshingSettings',
    'MeshingResult',
    'PartitioningMode',
    'MeshingError',
    'ConfigurationError',
    'InvalidPartitioningMode',
    'SizingSearchFailure',
    'EmptyMeshError',
    'PersistenceError',
]
