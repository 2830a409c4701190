"""
Reconstruction Dispatch
=======================

Runs the dense reconstruction engine once per block of a plan, in plan
order, and hands the block meshes over one at a time.
"""

import time
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from ..core.interfaces import BlockReconstructionRequest, IDenseReconstructionEngine
from ..core.structures import (
    Block, Camera, Hexahedron, LocalMeshResult, PartitioningMode, ReconstructionPlan, VoxelGrid,
)
from ..errors import EmptyMeshError
from ..io.mesh_exporter import MeshExporter
from ..logger import get_logger
from ..mesh.mesh_processor import MeshProcessor
from ..space.track_estimator import TrackCountEstimator

CONSISTENCY_DEBUG_MESH = "meshColoredbyCamsConsistency_postprocess.ply"
VISIBILITY_DEBUG_MESH = "meshColoredByVisibility_postprocess.ply"


class ReconstructionDispatcher:
    """
    Drives the engine over the blocks of a plan.

    Single-block mode additionally runs the engine regularization pass,
    the optional debug exports and the mesh post-processing (crop to the
    domain, excluded regions, main component).
    """

    def __init__(self,
                 engine: IDenseReconstructionEngine,
                 cameras: Sequence[Camera],
                 voxel_grid: VoxelGrid,
                 estimator: TrackCountEstimator,
                 mesh_processor: Optional[MeshProcessor] = None,
                 exporter: Optional[MeshExporter] = None,
                 export_debug: bool = False,
                 keep_largest_component: bool = True):
        self.engine = engine
        self.cameras: Dict[int, Camera] = {c.id: c for c in cameras}
        self.voxel_grid = voxel_grid
        self.estimator = estimator
        self.mesh_processor = mesh_processor or MeshProcessor()
        self.exporter = exporter or MeshExporter()
        self.export_debug = export_debug
        self.keep_largest_component = keep_largest_component
        self.logger = get_logger("Dispatcher")

    def build_request(self, plan: ReconstructionPlan, block: Block, work_dir: Path,
                      exclusion: Optional[List[Hexahedron]] = None) -> BlockReconstructionRequest:
        """Gather the block geometry, its neighbors, cameras and tracks"""
        neighbors = plan.neighbors_of(block)

        # Tracks of the block and of its neighbors, so the engine can see across boundaries
        mask = self.block_mask(block)
        for neighbor in neighbors:
            mask |= self.estimator.region_mask(self.voxel_grid, neighbor.voxel_range)

        cameras = [self.cameras[cam_id] for cam_id in block.camera_ids if cam_id in self.cameras]
        working_dir = Path(work_dir) / block.name
        working_dir.mkdir(parents=True, exist_ok=True)

        return BlockReconstructionRequest(
            block=block,
            neighbors=neighbors,
            cameras=cameras,
            tracks=self.estimator.tracks.subset(mask),
            working_dir=working_dir,
            voxel_grid=self.voxel_grid,
            steps=self.voxel_grid.steps,
            exclusion=exclusion,
            single_block=plan.mode == PartitioningMode.SINGLE_BLOCK,
        )

    def dispatch(self, plan: ReconstructionPlan, work_dir: Path,
                 exclusion: Optional[List[Hexahedron]] = None,
                 out_dir: Optional[Path] = None) -> Iterator[LocalMeshResult]:
        """
        Reconstruct every block of the plan, in order.

        Args:
            plan: Reconstruction plan
            work_dir: Parent of the per-block working directories
            exclusion: Regions omitted from the output mesh (single-block mode only)
            out_dir: Destination of the debug meshes. If None, work_dir

        Yields:
            LocalMeshResult of each block holding tracks. Blocks without
            any track are skipped with a warning.

        Raises:
            EmptyMeshError: As soon as the mesh of a block holding tracks has no vertex
        """
        single_block = plan.mode == PartitioningMode.SINGLE_BLOCK
        if exclusion and not single_block:
            self.logger.warning("Exclusion regions are only applied in single-block mode, ignoring them")
            exclusion = None

        for index, block in enumerate(plan, start=1):
            self.logger.info(
                f"--- Block {index}/{len(plan)}: {block.name} "
                f"({len(block.camera_ids)} cameras, {len(block.neighbors)} neighbors)"
            )
            start = time.time()

            if not self.block_mask(block).any():
                self.logger.warning(f"{block.name}: no track inside the block, skipping reconstruction")
                continue

            request = self.build_request(plan, block, work_dir, exclusion)
            result = self.engine.reconstruct_block(request)
            result.block_name = block.name
            self._check_not_empty(result, block)

            if single_block:
                result = self.engine.post_process(result, request)
                self._check_not_empty(result, block)

                if self.export_debug:
                    self._export_debug_meshes(result, Path(out_dir or work_dir))

                result = self.mesh_processor.post_process_mesh(
                    result,
                    hexahedron=block.hexahedron,
                    exclusion=exclusion,
                    keep_largest_component=self.keep_largest_component,
                )

            self.logger.info(
                f"✓ {block.name}: {result.n_vertices:,} vertices, {result.n_faces:,} triangles "
                f"in {time.time() - start:.2f}s"
            )
            yield result

    def block_mask(self, block: Block) -> np.ndarray:
        """Tracks inside the block itself"""
        return self.estimator.region_mask(self.voxel_grid, block.voxel_range)

    def _check_not_empty(self, result: LocalMeshResult, block: Block):
        if result.is_empty:
            raise EmptyMeshError(f"Empty mesh: the engine produced no vertex for {block.name}")

    def _export_debug_meshes(self, result: LocalMeshResult, out_dir: Path):
        self.exporter.export_mesh(
            result.vertices, result.faces, out_dir / CONSISTENCY_DEBUG_MESH,
            vertex_colors=self.mesh_processor.consistency_colors(result),
        )
        self.exporter.export_mesh(
            result.vertices, result.faces, out_dir / VISIBILITY_DEBUG_MESH,
            vertex_colors=self.mesh_processor.visibility_colors(result),
        )
