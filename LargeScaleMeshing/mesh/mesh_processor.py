"""
Mesh Processing
===============

Post-processing of block meshes. Every operation keeps the per-vertex
camera lists aligned with the vertices.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from matplotlib import colormaps
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from ..core.structures import Hexahedron, LocalMeshResult


class MeshProcessor:
    """
    Mesh cleanup and debug coloring.

    Provides the single-block post-processing (crop to the block, drop
    excluded regions, keep the main component) and the camera-support
    filtering used as regularization.
    """

    def __init__(self):
        """Initialize mesh processor"""
        self.logger = logging.getLogger("LargeScaleMeshing.Mesh")

    def post_process_mesh(self,
                          mesh: LocalMeshResult,
                          hexahedron: Optional[Hexahedron] = None,
                          exclusion: Optional[Sequence[Hexahedron]] = None,
                          keep_largest_component: bool = True) -> LocalMeshResult:
        """
        Post-process a mesh.

        Args:
            mesh: Input mesh with camera lists
            hexahedron: Faces with a vertex outside it are removed
            exclusion: Faces with a vertex inside one of these are removed
            keep_largest_component: Remove disconnected components

        Returns:
            Processed mesh
        """
        self.logger.info("Post-processing mesh...")
        processed = mesh

        if hexahedron is not None or exclusion:
            processed = self.crop(processed, hexahedron, exclusion)

        if keep_largest_component:
            self.logger.info("Removing outliers...")
            processed = self.keep_largest_component(processed)

        self.logger.info(
            f"✓ Final mesh: {processed.n_vertices} vertices, {processed.n_faces} triangles"
        )
        return processed

    def crop(self, mesh: LocalMeshResult,
             hexahedron: Optional[Hexahedron] = None,
             exclusion: Optional[Sequence[Hexahedron]] = None) -> LocalMeshResult:
        """Remove faces leaving `hexahedron` or touching an excluded region"""
        keep_vertex = np.ones(mesh.n_vertices, dtype=bool)
        if hexahedron is not None and mesh.n_vertices:
            keep_vertex &= hexahedron.contains(mesh.vertices)
        for region in exclusion or []:
            if mesh.n_vertices:
                keep_vertex &= ~region.contains(mesh.vertices)

        return self.remove_vertices(mesh, ~keep_vertex)

    def filter_by_camera_support(self, mesh: LocalMeshResult, min_cams: int) -> LocalMeshResult:
        """Remove vertices supported by fewer than `min_cams` cameras"""
        counts = np.array([len(c) for c in mesh.pts_cams], dtype=np.int64)
        weak = counts < min_cams
        if weak.any():
            self.logger.info(f"Removing {int(weak.sum())} vertices with fewer than {min_cams} cameras")
        return self.remove_vertices(mesh, weak)

    def keep_largest_component(self, mesh: LocalMeshResult) -> LocalMeshResult:
        """Keep only the largest connected set of triangles"""
        if mesh.n_faces == 0:
            return mesh

        n_faces = mesh.n_faces
        # Faces are connected through shared vertices: face -> vertex incidence graph
        rows = np.repeat(np.arange(n_faces), 3)
        cols = n_faces + mesh.faces.ravel()
        size = n_faces + mesh.n_vertices
        graph = coo_matrix((np.ones(len(rows)), (rows, cols)), shape=(size, size))
        _, labels = connected_components(graph, directed=False)

        face_labels = labels[:n_faces]
        largest = np.bincount(face_labels).argmax()
        faces = mesh.faces[face_labels == largest]

        return self.remove_unreferenced_vertices(
            LocalMeshResult(mesh.vertices, faces, mesh.pts_cams, mesh.block_name)
        )

    def remove_vertices(self, mesh: LocalMeshResult, remove_mask: np.ndarray) -> LocalMeshResult:
        """Remove masked vertices and every face using them"""
        remove_mask = np.asarray(remove_mask, dtype=bool)
        if not remove_mask.any():
            return mesh

        keep = ~remove_mask
        remap = np.full(mesh.n_vertices, -1, dtype=np.int64)
        remap[keep] = np.arange(int(keep.sum()))

        faces = mesh.faces[keep[mesh.faces].all(axis=1)] if mesh.n_faces else mesh.faces
        return LocalMeshResult(
            vertices=mesh.vertices[keep],
            faces=remap[faces],
            pts_cams=[c for c, k in zip(mesh.pts_cams, keep) if k],
            block_name=mesh.block_name,
        )

    def remove_unreferenced_vertices(self, mesh: LocalMeshResult) -> LocalMeshResult:
        referenced = np.zeros(mesh.n_vertices, dtype=bool)
        referenced[mesh.faces.ravel()] = True
        return self.remove_vertices(mesh, ~referenced)

    # ------------------------------------------------------------------
    # Debug coloring
    # ------------------------------------------------------------------

    def visibility_colors(self, mesh: LocalMeshResult) -> np.ndarray:
        """RGBA colors from the number of supporting cameras"""
        counts = np.array([len(c) for c in mesh.pts_cams], dtype=np.float64)
        return self._colorize(counts)

    def consistency_colors(self, mesh: LocalMeshResult) -> np.ndarray:
        """RGBA colors from the camera overlap of each vertex with its neighbors"""
        return self._colorize(self.camera_consistency(mesh))

    def camera_consistency(self, mesh: LocalMeshResult) -> np.ndarray:
        """
        Mean Jaccard similarity between the camera set of a vertex and the
        camera sets of the vertices sharing an edge with it.
        """
        scores = np.zeros(mesh.n_vertices, dtype=np.float64)
        if mesh.n_faces == 0:
            return scores

        edges = np.concatenate([mesh.faces[:, [0, 1]], mesh.faces[:, [1, 2]], mesh.faces[:, [2, 0]]])
        edges = np.unique(np.sort(edges, axis=1), axis=0)

        cam_sets: List[set] = [set(c.tolist()) for c in mesh.pts_cams]
        degree = np.zeros(mesh.n_vertices, dtype=np.float64)
        for u, v in edges:
            union = len(cam_sets[u] | cam_sets[v])
            similarity = len(cam_sets[u] & cam_sets[v]) / union if union else 0.0
            scores[u] += similarity
            scores[v] += similarity
            degree[u] += 1
            degree[v] += 1

        return np.divide(scores, degree, out=np.zeros_like(scores), where=degree > 0)

    @staticmethod
    def _colorize(values: np.ndarray) -> np.ndarray:
        if values.size == 0:
            return np.zeros((0, 4), dtype=np.uint8)
        span = values.max() - values.min()
        normalized = (values - values.min()) / span if span > 0 else np.zeros_like(values)
        return (colormaps['viridis'](normalized) * 255).astype(np.uint8)
