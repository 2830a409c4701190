"""
Block Reconstruction
====================

Per-block engine dispatch and merge of the block meshes.
"""

from .dispatcher import ReconstructionDispatcher
from .merger import MeshMerger, merge

__all__ = [
    'ReconstructionDispatcher',
    'MeshMerger',
    'merge',
]
