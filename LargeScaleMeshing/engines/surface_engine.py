"""
Point Cloud Surface Engine
==========================

Dense reconstruction engine that meshes the candidate tracks of a block
directly with Open3D surface reconstruction.
"""

import logging
from typing import List, Literal

import numpy as np
import open3d as o3d
from scipy.spatial import cKDTree

from ..config import SURFACE_METHODS
from ..core.interfaces import BlockReconstructionRequest, IDenseReconstructionEngine
from ..core.structures import LocalMeshResult, TrackSet
from ..io.binary_io import save_array_of_arrays, save_mesh_bin
from ..mesh.mesh_processor import MeshProcessor

SurfaceMethod = Literal['alpha_shape', 'poisson', 'ball_pivoting']

BLOCK_MESH_BIN = "mesh.bin"
BLOCK_PTS_CAMS_BIN = "meshPtsCams.bin"
MIN_TRACKS = 4


class PointCloudSurfaceEngine(IDenseReconstructionEngine):
    """
    Surface extraction from the block tracks.

    Each output vertex is supported by the cameras of its nearest tracks.
    In multi-block mode the mesh is cropped to the block; neighboring
    tracks are still used so the surface does not stop short of the
    block boundary.
    """

    def __init__(self,
                 method: SurfaceMethod = 'alpha_shape',
                 neighbour_cams: int = 8,
                 min_cams_per_vertex: int = 1,
                 save_block_meshes: bool = True):
        if method not in SURFACE_METHODS:
            raise ValueError(f"Unknown surface method: {method}")
        self.method = method
        self.neighbour_cams = max(int(neighbour_cams), 1)
        self.min_cams_per_vertex = int(min_cams_per_vertex)
        self.save_block_meshes = save_block_meshes
        self.mesh_processor = MeshProcessor()
        self.logger = logging.getLogger("LargeScaleMeshing.Engine")

    def reconstruct_block(self, request: BlockReconstructionRequest) -> LocalMeshResult:
        block = request.block
        tracks = request.tracks

        if len(tracks) < MIN_TRACKS:
            self.logger.warning(f"{block.name}: only {len(tracks)} tracks, nothing to mesh")
            return LocalMeshResult(np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64), [], block.name)

        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(tracks.points)

        mesh = self.extract_mesh(pcd)
        vertices = np.asarray(mesh.vertices)
        faces = np.asarray(mesh.triangles)

        result = LocalMeshResult(vertices, faces, self.vertex_cameras(vertices, tracks), block.name)
        if not request.single_block:
            result = self.mesh_processor.crop(result, block.hexahedron)
            result = self.mesh_processor.remove_unreferenced_vertices(result)

        if self.save_block_meshes:
            save_mesh_bin(request.working_dir / BLOCK_MESH_BIN, result.vertices, result.faces)
            save_array_of_arrays(request.working_dir / BLOCK_PTS_CAMS_BIN, result.pts_cams)

        return result

    def post_process(self, result: LocalMeshResult,
                     request: BlockReconstructionRequest) -> LocalMeshResult:
        """Drop vertices seen by too few cameras"""
        if self.min_cams_per_vertex <= 1:
            return result
        return self.mesh_processor.filter_by_camera_support(result, self.min_cams_per_vertex)

    def vertex_cameras(self, vertices: np.ndarray, tracks: TrackSet) -> List[np.ndarray]:
        """Union of the cameras of the nearest tracks of each vertex"""
        if len(vertices) == 0:
            return []

        k = min(self.neighbour_cams, len(tracks))
        _, nearest = cKDTree(tracks.points).query(vertices, k=k)
        nearest = np.asarray(nearest).reshape(len(vertices), k)

        return [tracks.cameras_in(row) for row in nearest]

    # ------------------------------------------------------------------

    def extract_mesh(self, pcd: o3d.geometry.PointCloud) -> o3d.geometry.TriangleMesh:
        """
        Extract a triangle mesh from a point cloud.

        Raises:
            RuntimeError: If Open3D fails on the point set
        """
        self.logger.info(f"Extracting mesh using {self.method} from {len(pcd.points):,} points...")

        if self.method == 'poisson':
            mesh = self._poisson_reconstruction(pcd)
        elif self.method == 'ball_pivoting':
            mesh = self._ball_pivoting(pcd)
        else:
            mesh = self._alpha_shape(pcd)

        self.logger.info(f"✓ {len(mesh.vertices)} vertices, {len(mesh.triangles)} triangles")
        return mesh

    def _mean_spacing(self, pcd: o3d.geometry.PointCloud) -> float:
        distances = np.asarray(pcd.compute_nearest_neighbor_distance())
        spacing = float(np.mean(distances)) if len(distances) else 0.0
        return spacing if spacing > 0 else 1e-3

    def _alpha_shape(self, pcd: o3d.geometry.PointCloud) -> o3d.geometry.TriangleMesh:
        alpha = self._mean_spacing(pcd) * 3.0
        return o3d.geometry.TriangleMesh.create_from_point_cloud_alpha_shape(pcd, alpha)

    def _ball_pivoting(self, pcd: o3d.geometry.PointCloud) -> o3d.geometry.TriangleMesh:
        if not pcd.has_normals():
            pcd.estimate_normals()

        spacing = self._mean_spacing(pcd)
        radii = [spacing * r for r in (1.0, 2.0, 4.0)]
        return o3d.geometry.TriangleMesh.create_from_point_cloud_ball_pivoting(
            pcd, o3d.utility.DoubleVector(radii)
        )

    def _poisson_reconstruction(self, pcd: o3d.geometry.PointCloud) -> o3d.geometry.TriangleMesh:
        if not pcd.has_normals():
            radius = self._mean_spacing(pcd) * 5.0
            pcd.estimate_normals(
                search_param=o3d.geometry.KDTreeSearchParamHybrid(radius=radius, max_nn=30)
            )
            pcd.orient_normals_consistent_tangent_plane(k=15)

        mesh, densities = o3d.geometry.TriangleMesh.create_from_point_cloud_poisson(
            pcd, depth=9, width=0, scale=1.1, linear_fit=False
        )

        # Poisson extrapolates far from the samples: drop the sparsest vertices
        densities = np.asarray(densities)
        mesh.remove_vertices_by_mask(densities < np.quantile(densities, 0.01))
        return mesh
