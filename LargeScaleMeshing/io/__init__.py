"""
I/O utilities for meshing artifacts.

Components:
    - binary_io: plan cache, mesh snapshot, camera-visibility and space files
    - MeshExporter: final artifact persistence

Usage:
    from LargeScaleMeshing.io import MeshExporter, load_mesh_bin

    exporter = MeshExporter()
    exporter.save_bin(vertices, faces, 'out/denseReconstruction.bin')
    vertices, faces = load_mesh_bin('out/denseReconstruction.bin')
"""

from .binary_io import (
    save_points,
    load_points,
    save_array_of_arrays,
    load_array_of_arrays,
    save_mesh_bin,
    load_mesh_bin,
    save_space,
    load_space,
)
from .mesh_exporter import MeshExporter, DENSE_RECONSTRUCTION_BIN, PTS_CAMS_BIN

__all__ = [
    'save_points',
    'load_points',
    'save_array_of_arrays',
    'load_array_of_arrays',
    'save_mesh_bin',
    'load_mesh_bin',
    'save_space',
    'load_space',
    'MeshExporter',
    'DENSE_RECONSTRUCTION_BIN',
    'PTS_CAMS_BIN',
]
