"""
Core data structures for large-scale meshing.

Geometry (hexahedra, voxel grids, blocks), point tracks with their
supporting cameras, reconstruction plans and mesh results.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np


# Corner order of a hexahedron in its unit-cube (local) coordinates.
UNIT_CORNERS = np.array([
    [0, 0, 0],
    [1, 0, 0],
    [1, 1, 0],
    [0, 1, 0],
    [0, 0, 1],
    [1, 0, 1],
    [1, 1, 1],
    [0, 1, 1],
], dtype=np.float64)

VoxelRange = Tuple[Tuple[int, int], Tuple[int, int], Tuple[int, int]]


class PartitioningMode(Enum):
    """Partitioning strategy of the reconstruction volume"""
    UNDEFINED = 0
    SINGLE_BLOCK = 1
    AUTO = 2

    @classmethod
    def from_string(cls, value: str) -> 'PartitioningMode':
        """Map a CLI string to a mode. Unknown strings give UNDEFINED."""
        if value == 'singleBlock':
            return cls.SINGLE_BLOCK
        if value == 'auto':
            return cls.AUTO
        return cls.UNDEFINED

    def __str__(self) -> str:
        if self is PartitioningMode.SINGLE_BLOCK:
            return 'singleBlock'
        if self is PartitioningMode.AUTO:
            return 'auto'
        return 'undefined'


class Hexahedron:
    """
    Parallelepiped described by its 8 corners.

    Corners follow UNIT_CORNERS: corner 0 is the origin, corners 1, 3 and 4
    end the three edges leaving it. Axis-aligned boxes and oriented boxes
    are both supported. Instances are immutable.
    """

    __slots__ = ('_corners',)

    def __init__(self, corners):
        corners = np.array(corners, dtype=np.float64).reshape(8, 3)
        corners.setflags(write=False)
        self._corners = corners

    @classmethod
    def from_bounds(cls, lower, upper) -> 'Hexahedron':
        """Axis-aligned hexahedron from its min / max corners"""
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)
        return cls(lower + UNIT_CORNERS * (upper - lower))

    @classmethod
    def from_frame(cls, origin, axes) -> 'Hexahedron':
        """Hexahedron from an origin and three edge vectors (rows of `axes`)"""
        origin = np.asarray(origin, dtype=np.float64)
        axes = np.asarray(axes, dtype=np.float64).reshape(3, 3)
        return cls(origin + UNIT_CORNERS @ axes)

    @property
    def corners(self) -> np.ndarray:
        return self._corners

    @property
    def origin(self) -> np.ndarray:
        return self._corners[0]

    @property
    def axes(self) -> np.ndarray:
        """Edge vectors as rows: (c1 - c0, c3 - c0, c4 - c0)"""
        c = self._corners
        return np.stack([c[1] - c[0], c[3] - c[0], c[4] - c[0]])

    @property
    def edge_lengths(self) -> np.ndarray:
        return np.linalg.norm(self.axes, axis=1)

    @property
    def volume(self) -> float:
        return float(abs(np.linalg.det(self.axes)))

    def to_local(self, points: np.ndarray) -> np.ndarray:
        """World points (N, 3) -> unit-cube coordinates (N, 3)"""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.linalg.solve(self.axes.T, (points - self.origin).T).T

    def from_local(self, uvw: np.ndarray) -> np.ndarray:
        """Unit-cube coordinates (N, 3) -> world points (N, 3)"""
        uvw = np.asarray(uvw, dtype=np.float64).reshape(-1, 3)
        return self.origin + uvw @ self.axes

    def sub_hexahedron(self, lower, upper) -> 'Hexahedron':
        """Sub-volume spanning local coordinates [lower, upper]"""
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)
        return Hexahedron(self.from_local(lower + UNIT_CORNERS * (upper - lower)))

    def contains(self, points: np.ndarray, tol: float = 1e-9) -> np.ndarray:
        """Boolean mask of the points lying inside (boundary included)"""
        uvw = self.to_local(points)
        return np.all((uvw >= -tol) & (uvw <= 1.0 + tol), axis=1)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Hexahedron):
            return NotImplemented
        return np.array_equal(self._corners, other._corners)

    def __hash__(self):
        return hash(self._corners.tobytes())

    def __repr__(self) -> str:
        lo = self._corners.min(axis=0)
        hi = self._corners.max(axis=0)
        return f"Hexahedron(min={lo.round(4).tolist()}, max={hi.round(4).tolist()})"


# The full reconstruction extent is a hexahedron, fixed once per run.
SpatialDomain = Hexahedron


@dataclass(frozen=True)
class VoxelGrid:
    """
    Partition of the spatial domain into nx * ny * nz voxels.

    `resolution` is the lattice density (cells per axis over the whole
    domain) used to estimate track counts; `dimensions` is the number of
    voxels per axis. Voxels tile the domain exactly.
    """
    domain: Hexahedron
    dimensions: Tuple[int, int, int]
    resolution: int

    def __post_init__(self):
        dims = tuple(int(d) for d in self.dimensions)
        if len(dims) != 3 or min(dims) <= 0:
            raise ValueError(f"Voxel grid dimensions must be 3 positive integers, got {self.dimensions}")
        if int(self.resolution) <= 0:
            raise ValueError(f"Grid resolution must be positive, got {self.resolution}")
        object.__setattr__(self, 'dimensions', dims)
        object.__setattr__(self, 'resolution', int(self.resolution))

    @property
    def n_voxels(self) -> int:
        nx, ny, nz = self.dimensions
        return nx * ny * nz

    @property
    def steps(self) -> np.ndarray:
        """Voxel edge lengths along the three domain axes"""
        return self.domain.edge_lengths / np.asarray(self.dimensions, dtype=np.float64)

    @property
    def full_range(self) -> VoxelRange:
        nx, ny, nz = self.dimensions
        return ((0, nx), (0, ny), (0, nz))

    def with_resolution(self, resolution: int) -> 'VoxelGrid':
        return VoxelGrid(self.domain, self.dimensions, resolution)

    def with_dimensions(self, dimensions) -> 'VoxelGrid':
        return VoxelGrid(self.domain, tuple(dimensions), self.resolution)

    def flat_index(self, i: int, j: int, k: int) -> int:
        return int(np.ravel_multi_index((i, j, k), self.dimensions))

    def range_hexahedron(self, voxel_range: VoxelRange) -> Hexahedron:
        """Hexahedron covering a box of voxel indices [i0, i1) x [j0, j1) x [k0, k1)"""
        dims = np.asarray(self.dimensions, dtype=np.float64)
        lower = np.array([r[0] for r in voxel_range], dtype=np.float64) / dims
        upper = np.array([r[1] for r in voxel_range], dtype=np.float64) / dims
        return self.domain.sub_hexahedron(lower, upper)

    def voxel_hexahedron(self, i: int, j: int, k: int) -> Hexahedron:
        return self.range_hexahedron(((i, i + 1), (j, j + 1), (k, k + 1)))

    def voxels(self) -> List[Hexahedron]:
        """All voxels in flat (C) order"""
        nx, ny, nz = self.dimensions
        return [self.voxel_hexahedron(i, j, k)
                for i in range(nx) for j in range(ny) for k in range(nz)]

    def point_voxel_indices(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Voxel (i, j, k) of each point.

        Returns:
            indices: (N, 3) int64 voxel indices (clipped to the grid)
            inside: (N,) bool mask of points inside the domain
        """
        uvw = self.domain.to_local(points)
        inside = np.all((uvw >= 0.0) & (uvw <= 1.0), axis=1)
        dims = np.asarray(self.dimensions)
        indices = np.floor(uvw * dims).astype(np.int64)
        indices = np.clip(indices, 0, dims - 1)
        return indices, inside


class TrackSet:
    """
    Candidate 3D points with the cameras supporting each of them.

    Camera lists are stored in CSR form: the cameras of track i are
    cam_ids[cam_offsets[i]:cam_offsets[i + 1]].
    """

    def __init__(self, points: np.ndarray, cam_offsets: np.ndarray, cam_ids: np.ndarray):
        self.points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        self.cam_offsets = np.asarray(cam_offsets, dtype=np.int64)
        self.cam_ids = np.asarray(cam_ids, dtype=np.int32)

        if self.cam_offsets.shape != (len(self.points) + 1,):
            raise ValueError(
                f"cam_offsets must have {len(self.points) + 1} entries, got {self.cam_offsets.shape}"
            )
        if self.cam_offsets[-1] != len(self.cam_ids):
            raise ValueError("cam_offsets does not match the number of camera ids")

    @classmethod
    def empty(cls) -> 'TrackSet':
        return cls(np.zeros((0, 3)), np.zeros(1, dtype=np.int64), np.zeros(0, dtype=np.int32))

    @classmethod
    def from_observations(cls, points: np.ndarray, cam_ids: np.ndarray) -> 'TrackSet':
        """One track per point, each seen by a single camera"""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return cls(points, np.arange(len(points) + 1, dtype=np.int64), np.asarray(cam_ids))

    @classmethod
    def from_lists(cls, points: np.ndarray, cams_per_track: Sequence[Sequence[int]]) -> 'TrackSet':
        counts = np.array([len(c) for c in cams_per_track], dtype=np.int64)
        offsets = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)
        ids = (np.concatenate([np.asarray(c, dtype=np.int32) for c in cams_per_track])
               if len(cams_per_track) else np.zeros(0, dtype=np.int32))
        return cls(points, offsets, ids)

    @classmethod
    def concatenate(cls, track_sets: Sequence['TrackSet']) -> 'TrackSet':
        if not track_sets:
            return cls.empty()
        points = np.concatenate([ts.points for ts in track_sets])
        ids = np.concatenate([ts.cam_ids for ts in track_sets])
        counts = np.concatenate([np.diff(ts.cam_offsets) for ts in track_sets])
        offsets = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)
        return cls(points, offsets, ids)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def camera_ids(self) -> np.ndarray:
        """Sorted ids of every camera supporting at least one track"""
        return np.unique(self.cam_ids)

    def cameras_of(self, index: int) -> np.ndarray:
        return self.cam_ids[self.cam_offsets[index]:self.cam_offsets[index + 1]]

    def _gather(self, indices: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        starts = self.cam_offsets[indices]
        counts = self.cam_offsets[indices + 1] - starts
        new_offsets = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)
        total = int(new_offsets[-1])
        positions = np.repeat(starts - new_offsets[:-1], counts) + np.arange(total)
        return new_offsets, self.cam_ids[positions]

    def _as_indices(self, selection) -> np.ndarray:
        selection = np.asarray(selection)
        if selection.dtype == bool:
            return np.flatnonzero(selection)
        return selection.astype(np.int64)

    def subset(self, selection) -> 'TrackSet':
        """Tracks selected by a boolean mask or an index array"""
        indices = self._as_indices(selection)
        offsets, ids = self._gather(indices)
        return TrackSet(self.points[indices], offsets, ids)

    def cameras_in(self, selection) -> np.ndarray:
        """Sorted unique cameras supporting the selected tracks"""
        indices = self._as_indices(selection)
        _, ids = self._gather(indices)
        return np.unique(ids)


@dataclass
class Camera:
    """Calibrated pinhole camera (world -> camera: x_cam = R @ X + t)"""
    id: int
    K: np.ndarray
    R: np.ndarray
    t: np.ndarray
    width: int
    height: int
    name: str = ''

    def __post_init__(self):
        self.K = np.asarray(self.K, dtype=np.float64).reshape(3, 3)
        self.R = np.asarray(self.R, dtype=np.float64).reshape(3, 3)
        self.t = np.asarray(self.t, dtype=np.float64).reshape(3)

    @property
    def center(self) -> np.ndarray:
        return -self.R.T @ self.t

    def back_project(self, depth_map: np.ndarray, pixel_step: int = 1,
                     mask: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Back-project valid depth samples to world points.

        Args:
            depth_map: (H, W) depth along the optical axis, <= 0 means invalid
            pixel_step: Sampling step in pixels
            mask: Optional (H, W) boolean mask of usable pixels

        Returns:
            (N, 3) world points
        """
        step = max(int(pixel_step), 1)
        depth = np.asarray(depth_map, dtype=np.float64)[::step, ::step]
        valid = np.isfinite(depth) & (depth > 0)
        if mask is not None:
            valid &= np.asarray(mask, dtype=bool)[::step, ::step]

        rows, cols = np.nonzero(valid)
        z = depth[rows, cols]
        pixels = np.stack([cols * step, rows * step, np.ones_like(z)], axis=0).astype(np.float64)
        rays = np.linalg.solve(self.K, pixels)
        cam_points = rays * z
        return (self.R.T @ (cam_points - self.t[:, None])).T


@dataclass(frozen=True)
class Block:
    """Hexahedral sub-region submitted as one unit to the reconstruction engine"""
    name: str
    hexahedron: Hexahedron
    voxel_range: VoxelRange
    neighbors: Tuple[str, ...] = ()
    camera_ids: Tuple[int, ...] = ()
    track_estimate: Optional[int] = None

    @property
    def n_voxels(self) -> int:
        return int(np.prod([hi - lo for lo, hi in self.voxel_range]))

    def touches(self, other: 'Block') -> bool:
        """True when the voxel boxes share a face, an edge or a corner"""
        if other.name == self.name:
            return False
        return all(a0 <= b1 and b0 <= a1
                   for (a0, a1), (b0, b1) in zip(self.voxel_range, other.voxel_range))


@dataclass
class ReconstructionPlan:
    """Ordered blocks to reconstruct"""
    blocks: List[Block]
    mode: PartitioningMode
    cache_path: Optional[Path] = None
    from_cache: bool = False

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks)

    def block(self, name: str) -> Block:
        for block in self.blocks:
            if block.name == name:
                return block
        raise KeyError(name)

    def neighbors_of(self, block: Block) -> List[Block]:
        return [self.block(name) for name in block.neighbors]

    def hexahedra(self) -> np.ndarray:
        """(n_blocks * 8, 3) array of block corners"""
        if not self.blocks:
            return np.zeros((0, 3))
        return np.concatenate([b.hexahedron.corners for b in self.blocks])


@dataclass
class LocalMeshResult:
    """Mesh of one block with its per-vertex supporting cameras"""
    vertices: np.ndarray
    faces: np.ndarray
    pts_cams: List[np.ndarray]
    block_name: str = ''

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
        self.pts_cams = [np.asarray(c, dtype=np.int32) for c in self.pts_cams]

        if len(self.pts_cams) != len(self.vertices):
            raise ValueError(
                f"Block {self.block_name!r}: {len(self.pts_cams)} camera lists "
                f"for {len(self.vertices)} vertices"
            )
        if len(self.faces) and (self.faces.min() < 0 or self.faces.max() >= len(self.vertices)):
            raise ValueError(f"Block {self.block_name!r}: face index out of range")

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @property
    def is_empty(self) -> bool:
        return self.n_vertices == 0

    @property
    def used_cams(self) -> np.ndarray:
        """Sorted cameras supporting at least one vertex"""
        if not self.pts_cams:
            return np.zeros(0, dtype=np.int32)
        return np.unique(np.concatenate(self.pts_cams))


@dataclass(frozen=True)
class GlobalMesh:
    vertices: np.ndarray
    faces: np.ndarray

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)


@dataclass(frozen=True)
class MergeState:
    """
    Accumulated merge of local meshes.

    Chunks are kept per block and concatenated on demand; faces are stored
    already offset into the global vertex numbering. Camera lists are kept
    per block as well; `pts_cams` flattens them into the global
    camera-visibility array, index-aligned with the mesh vertices.
    """
    vertex_chunks: Tuple[np.ndarray, ...] = ()
    face_chunks: Tuple[np.ndarray, ...] = ()
    pts_cams_chunks: Tuple[Tuple[np.ndarray, ...], ...] = ()
    block_names: Tuple[str, ...] = ()
    n_vertices: int = 0
    n_faces: int = 0

    @classmethod
    def empty(cls) -> 'MergeState':
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.n_vertices == 0

    @property
    def pts_cams(self) -> List[np.ndarray]:
        return [cams for chunk in self.pts_cams_chunks for cams in chunk]

    @property
    def mesh(self) -> GlobalMesh:
        vertices = (np.concatenate(self.vertex_chunks) if self.vertex_chunks
                    else np.zeros((0, 3), dtype=np.float64))
        faces = (np.concatenate(self.face_chunks) if self.face_chunks
                 else np.zeros((0, 3), dtype=np.int64))
        return GlobalMesh(vertices, faces)


@dataclass
class MeshingResult:
    """Outcome of a meshing run"""
    mode: PartitioningMode
    output_mesh: Path
    dense_reconstruction_bin: Path
    pts_cams_bin: Path
    n_blocks: int
    n_vertices: int
    n_faces: int
    statistics: dict = field(default_factory=dict)
