"""
Mesh Export
===========

Writes the final artifacts of a meshing run: binary mesh snapshot,
interchange export (OBJ, PLY, ... chosen by suffix) and the per-vertex
camera-visibility array. Debug exports write colored PLY meshes.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import trimesh

from ..errors import PersistenceError
from .binary_io import save_array_of_arrays, save_mesh_bin

DENSE_RECONSTRUCTION_BIN = "denseReconstruction.bin"
PTS_CAMS_BIN = "meshPtsCamsFromDGC.bin"


class MeshExporter:
    """Persistence of merged meshes"""

    def __init__(self):
        self.logger = logging.getLogger("LargeScaleMeshing.IO")

    def save_bin(self, vertices: np.ndarray, faces: np.ndarray, filepath: Union[str, Path]) -> Path:
        path = Path(filepath)
        save_mesh_bin(path, vertices, faces)
        self.logger.info(f"✓ Binary mesh saved to {path}")
        return path

    def save_pts_cams(self, pts_cams: Sequence[np.ndarray], filepath: Union[str, Path]) -> Path:
        path = Path(filepath)
        save_array_of_arrays(path, pts_cams)
        self.logger.info(f"✓ Camera visibility of {len(pts_cams):,} vertices saved to {path}")
        return path

    def export_mesh(self, vertices: np.ndarray, faces: np.ndarray, filepath: Union[str, Path],
                    vertex_colors: Optional[np.ndarray] = None) -> Path:
        """
        Export mesh to an interchange format

        Args:
            vertices: (V, 3) positions
            faces: (F, 3) vertex indices
            filepath: Output filename; the suffix selects the format
            vertex_colors: Optional (V, 3|4) uint8 colors

        Raises:
            PersistenceError: If the file cannot be written
        """
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        mesh = trimesh.Trimesh(
            vertices=np.asarray(vertices, dtype=np.float64),
            faces=np.asarray(faces, dtype=np.int64),
            vertex_colors=vertex_colors,
            process=False,
        )
        try:
            mesh.export(str(path))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to export mesh to {path}: {e}") from e

        self.logger.info(f"✓ Mesh exported to {path}")
        return path
