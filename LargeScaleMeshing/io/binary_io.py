"""
Binary Artifacts
================

Readers and writers for the binary files of a meshing run:

    hexahsToReconstruct.bin   array of points (block corners, 8 per block)
    denseReconstruction.bin   mesh snapshot (points then triangles)
    meshPtsCamsFromDGC.bin    array of arrays (cameras of every vertex)
    space.bin                 space description (corners, dimensions, resolution)

Formats (little-endian):
    array of points:  int32 n, then n * 3 float64
    array of arrays:  int32 n, then per entry int32 m and m * int32
    mesh:             array of points, then int32 t and t * 3 int32
    space:            8 * 3 float64 corners, 3 * int32 dimensions, int32 resolution
"""

from pathlib import Path
from typing import List, Sequence, Tuple, Union

import numpy as np

from ..core.structures import Hexahedron, VoxelGrid
from ..errors import PersistenceError

PathLike = Union[str, Path]

_INT = np.dtype('<i4')
_FLOAT = np.dtype('<f8')


def _read_exact(f, dtype: np.dtype, count: int, filepath: PathLike) -> np.ndarray:
    data = np.fromfile(f, dtype=dtype, count=count)
    if data.size != count:
        raise PersistenceError(f"Truncated file: {filepath}")
    return data


def _open(filepath: PathLike, mode: str):
    path = Path(filepath)
    if 'w' in mode:
        path.parent.mkdir(parents=True, exist_ok=True)
    elif not path.exists():
        raise PersistenceError(f"File not found: {filepath}")
    try:
        return open(path, mode)
    except OSError as e:
        raise PersistenceError(f"Cannot open {filepath}: {e}") from e


def _write_points(f, points: np.ndarray):
    points = np.asarray(points, dtype=_FLOAT).reshape(-1, 3)
    np.array([len(points)], dtype=_INT).tofile(f)
    points.tofile(f)


def _read_points(f, filepath: PathLike) -> np.ndarray:
    n = int(_read_exact(f, _INT, 1, filepath)[0])
    if n < 0:
        raise PersistenceError(f"Corrupted point array in {filepath}")
    return _read_exact(f, _FLOAT, n * 3, filepath).reshape(n, 3).astype(np.float64)


def save_points(filepath: PathLike, points: np.ndarray):
    """Write an array of 3D points"""
    try:
        with _open(filepath, 'wb') as f:
            _write_points(f, points)
    except OSError as e:
        raise PersistenceError(f"Failed to write {filepath}: {e}") from e


def load_points(filepath: PathLike) -> np.ndarray:
    """Read an array of 3D points"""
    try:
        with _open(filepath, 'rb') as f:
            return _read_points(f, filepath)
    except OSError as e:
        raise PersistenceError(f"Failed to read {filepath}: {e}") from e


def save_array_of_arrays(filepath: PathLike, arrays: Sequence[np.ndarray]):
    """Write a list of int arrays"""
    try:
        with _open(filepath, 'wb') as f:
            np.array([len(arrays)], dtype=_INT).tofile(f)
            for values in arrays:
                values = np.asarray(values, dtype=_INT).ravel()
                np.array([len(values)], dtype=_INT).tofile(f)
                values.tofile(f)
    except OSError as e:
        raise PersistenceError(f"Failed to write {filepath}: {e}") from e


def load_array_of_arrays(filepath: PathLike) -> List[np.ndarray]:
    """Read a list of int arrays"""
    arrays = []
    try:
        with _open(filepath, 'rb') as f:
            n = int(_read_exact(f, _INT, 1, filepath)[0])
            for _ in range(n):
                m = int(_read_exact(f, _INT, 1, filepath)[0])
                arrays.append(_read_exact(f, _INT, m, filepath).astype(np.int32))
    except OSError as e:
        raise PersistenceError(f"Failed to read {filepath}: {e}") from e
    return arrays


def save_mesh_bin(filepath: PathLike, vertices: np.ndarray, faces: np.ndarray):
    """Write a binary mesh snapshot"""
    faces = np.asarray(faces, dtype=_INT).reshape(-1, 3)
    try:
        with _open(filepath, 'wb') as f:
            _write_points(f, vertices)
            np.array([len(faces)], dtype=_INT).tofile(f)
            faces.tofile(f)
    except OSError as e:
        raise PersistenceError(f"Failed to write {filepath}: {e}") from e


def load_mesh_bin(filepath: PathLike) -> Tuple[np.ndarray, np.ndarray]:
    """Read a binary mesh snapshot"""
    try:
        with _open(filepath, 'rb') as f:
            vertices = _read_points(f, filepath)
            t = int(_read_exact(f, _INT, 1, filepath)[0])
            faces = _read_exact(f, _INT, t * 3, filepath).reshape(t, 3).astype(np.int64)
    except OSError as e:
        raise PersistenceError(f"Failed to read {filepath}: {e}") from e
    return vertices, faces


def save_space(filepath: PathLike, voxel_grid: VoxelGrid):
    """Write the space description of a voxel grid"""
    try:
        with _open(filepath, 'wb') as f:
            np.asarray(voxel_grid.domain.corners, dtype=_FLOAT).tofile(f)
            np.asarray(voxel_grid.dimensions, dtype=_INT).tofile(f)
            np.array([voxel_grid.resolution], dtype=_INT).tofile(f)
    except OSError as e:
        raise PersistenceError(f"Failed to write {filepath}: {e}") from e


def load_space(filepath: PathLike) -> VoxelGrid:
    """Read a space description back into a voxel grid"""
    try:
        with _open(filepath, 'rb') as f:
            corners = _read_exact(f, _FLOAT, 24, filepath).reshape(8, 3)
            dims = _read_exact(f, _INT, 3, filepath)
            resolution = int(_read_exact(f, _INT, 1, filepath)[0])
    except OSError as e:
        raise PersistenceError(f"Failed to read {filepath}: {e}") from e
    try:
        return VoxelGrid(Hexahedron(corners), tuple(int(d) for d in dims), resolution)
    except ValueError as e:
        raise PersistenceError(f"Corrupted space file {filepath}: {e}") from e
