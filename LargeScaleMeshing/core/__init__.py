"""
Core structures and interfaces.
"""

from .structures import (
    UNIT_CORNERS,
    PartitioningMode,
    Hexahedron,
    SpatialDomain,
    VoxelGrid,
    TrackSet,
    Camera,
    Block,
    ReconstructionPlan,
    LocalMeshResult,
    GlobalMesh,
    MergeState,
    MeshingResult,
)
from .interfaces import (
    ICameraTrackProvider,
    IDenseReconstructionEngine,
    BlockReconstructionRequest,
)

__all__ = [
    'UNIT_CORNERS',
    'PartitioningMode',
    'Hexahedron',
    'SpatialDomain',
    'VoxelGrid',
    'TrackSet',
    'Camera',
    'Block',
    'ReconstructionPlan',
    'LocalMeshResult',
    'GlobalMesh',
    'MergeState',
    'MeshingResult',
    'ICameraTrackProvider',
    'IDenseReconstructionEngine',
    'BlockReconstructionRequest',
]
