"""
Large-Scale Meshing Pipeline
============================

Main orchestrator of a meshing run: domain estimation, partitioning
(single block or automatic), per-block reconstruction, merge and
persistence of the final mesh.
"""

import time
from pathlib import Path
from typing import List, Optional

import numpy as np

from .config import MeshingConfig
from .core.interfaces import ICameraTrackProvider, IDenseReconstructionEngine
from .core.structures import Hexahedron, MeshingResult, PartitioningMode, ReconstructionPlan, VoxelGrid
from .io.binary_io import load_space, save_space
from .io.mesh_exporter import MeshExporter
from .logger import get_logger, log_banner
from .mesh.mesh_processor import MeshProcessor
from .planning.granularity_search import GranularitySearchController
from .planning.partition_planner import PLAN_CACHE_FILENAME, PartitionPlanner, single_block_plan
from .reconstruction.dispatcher import ReconstructionDispatcher
from .reconstruction.merger import MeshMerger
from .space.domain_estimator import SpaceEstimate, SpatialDomainEstimator
from .space.track_estimator import TrackCountEstimator

SPACE_FILENAME = "space.bin"
SINGLE_BLOCK_SPACE_DIR = "largeScaleMaxPts{:04d}"


class LargeScaleMeshingPipeline:
    """
    Large-scale meshing pipeline.

    Two mutually exclusive modes:
    1. AUTO: the domain is split into blocks fitting the track budget,
       each block is reconstructed then the meshes are concatenated
    2. SINGLE_BLOCK: the lattice resolution is lowered until the whole
       domain fits the budget, then it is reconstructed as one block and
       post-processed

    Usage:
        config = MeshingConfig(output_mesh='out/mesh.obj', partitioning=PartitioningMode.AUTO)
        pipeline = LargeScaleMeshingPipeline(config, SyntheticProvider(seed=0))
        result = pipeline.run()
    """

    def __init__(self,
                 config: MeshingConfig,
                 provider: ICameraTrackProvider,
                 engine: Optional[IDenseReconstructionEngine] = None,
                 exporter: Optional[MeshExporter] = None,
                 exclusion: Optional[List[Hexahedron]] = None):
        """
        Args:
            config: Run configuration
            provider: Cameras and track candidates
            engine: Dense reconstruction engine. If None, the Open3D surface engine
            exporter: Artifact writer
            exclusion: Regions removed from the mesh (single-block mode)
        """
        self.config = config
        self.provider = provider
        self.engine = engine
        self.exporter = exporter or MeshExporter()
        self.exclusion = exclusion
        self.logger = get_logger("Pipeline")

        self.stats = {
            'mode': str(config.partitioning),
            'num_cameras': 0,
            'num_tracks': 0,
            'resolution': None,
            'num_blocks': 0,
            'processing_time': {},
        }

    def run(self) -> MeshingResult:
        """
        Run the complete meshing pipeline.

        Returns:
            MeshingResult with the artifact paths and run statistics

        Raises:
            InvalidPartitioningMode: Undefined mode, before any computation
            ConfigurationError: Missing or malformed parameters
            SizingSearchFailure: The budget cannot be met
            EmptyMeshError: The reconstruction produced no vertex
            PersistenceError: An artifact cannot be read or written
        """
        self.config.validate()

        log_banner(self.logger, "LARGE-SCALE MESHING PIPELINE")
        start_time = time.time()

        output_dir = self.config.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        tmp_dir = self.config.tmp_dir
        tmp_dir.mkdir(parents=True, exist_ok=True)

        # Stage 1: Space
        self.logger.info("\n--- Stage 1: Space Estimation ---")
        stage_start = time.time()
        space = self._estimate_space()
        estimator = TrackCountEstimator(space.tracks, space.domain)
        grid = self.space_estimator.initial_grid(
            space.domain, estimator, self.config.max_pts_per_voxel, self.config.grid_level0
        )
        self.stats['num_cameras'] = len(space.cameras)
        self.stats['num_tracks'] = len(space.tracks)
        self._stage_done('space', stage_start)

        # Stage 2: Plan
        self.logger.info(f"\n--- Stage 2: Partitioning ({self.config.partitioning}) ---")
        stage_start = time.time()
        if self.config.partitioning == PartitioningMode.AUTO:
            plan = self._plan_auto(grid, estimator, tmp_dir)
        else:
            grid, plan = self._plan_single_block(grid, estimator, output_dir)
        self.stats['resolution'] = grid.resolution
        self.stats['num_blocks'] = len(plan)
        self._stage_done('planning', stage_start)

        # Stage 3: Reconstruction + merge
        self.logger.info("\n--- Stage 3: Block Reconstruction ---")
        stage_start = time.time()
        dispatcher = ReconstructionDispatcher(
            engine=self._get_engine(),
            cameras=space.cameras,
            voxel_grid=grid,
            estimator=estimator,
            mesh_processor=MeshProcessor(),
            exporter=self.exporter,
            export_debug=self.config.export_debug_gc,
            keep_largest_component=self.config.keep_largest_component,
        )
        merger = MeshMerger(self.exporter)
        state = merger.merge_all(dispatcher.dispatch(plan, tmp_dir, self.exclusion, out_dir=output_dir))
        self._stage_done('reconstruction', stage_start)

        # Stage 4: Persistence
        self.logger.info("\n--- Stage 4: Saving ---")
        stage_start = time.time()
        paths = merger.persist(state, self.config.output_mesh, output_dir)
        self._stage_done('saving', stage_start)

        total_time = time.time() - start_time
        self.stats['total_time'] = total_time

        log_banner(self.logger, "MESHING COMPLETE")
        self.logger.info(f"Mode: {self.config.partitioning}")
        self.logger.info(f"Blocks: {len(plan)}")
        self.logger.info(f"Vertices: {state.n_vertices:,}")
        self.logger.info(f"Triangles: {state.n_faces:,}")
        self.logger.info(f"Total time: {total_time:.2f}s")

        return MeshingResult(
            mode=self.config.partitioning,
            output_mesh=paths['output_mesh'],
            dense_reconstruction_bin=paths['dense_reconstruction_bin'],
            pts_cams_bin=paths['pts_cams_bin'],
            n_blocks=len(plan),
            n_vertices=state.n_vertices,
            n_faces=state.n_faces,
            statistics=self.stats,
        )

    @property
    def space_estimator(self) -> SpatialDomainEstimator:
        return SpatialDomainEstimator(
            margin_coef=self.config.domain_margin_coef,
            percentile=self.config.domain_percentile,
            oriented=self.config.oriented_domain,
            max_voxels_per_axis=self.config.max_voxels_per_axis,
        )

    def _estimate_space(self) -> SpaceEstimate:
        sim_threshold = self.config.sim_threshold if self.config.settings.has('global.simThr') else None
        return self.space_estimator.estimate_from(self.provider, sim_threshold)

    def _plan_auto(self, grid: VoxelGrid, estimator: TrackCountEstimator,
                   tmp_dir: Path) -> ReconstructionPlan:
        space_dir = tmp_dir / self.config.base_dir_name
        space_dir.mkdir(parents=True, exist_ok=True)
        save_space(space_dir / SPACE_FILENAME, grid)

        planner = PartitionPlanner(grid, estimator, cache_path=space_dir / PLAN_CACHE_FILENAME)
        return planner.plan(self.config.max_pts)

    def _plan_single_block(self, grid: VoxelGrid, estimator: TrackCountEstimator,
                           output_dir: Path):
        def space_dir(resolution: int) -> Path:
            return output_dir / SINGLE_BLOCK_SPACE_DIR.format(resolution)

        def save_step(resolution: int):
            path = space_dir(resolution) / SPACE_FILENAME
            if not path.exists():
                path.parent.mkdir(parents=True, exist_ok=True)
                save_space(path, grid.with_resolution(resolution))

        controller = GranularitySearchController(
            estimate_fn=lambda res: estimator.estimate(res, grid.with_resolution(res)),
            budget=self.config.max_pts,
            start_resolution=grid.resolution,
            min_resolution=self.config.min_grid_level,
            on_step=save_step,
        )
        result = controller.run()

        final_path = space_dir(result.resolution) / SPACE_FILENAME
        final_grid = load_space(final_path)
        if not np.allclose(final_grid.domain.corners, grid.domain.corners):
            self.logger.warning(
                f"{final_path} was saved by an earlier run over a different domain, "
                f"reusing it as is (delete it to recompute)"
            )
        self.logger.info(
            f"✓ Resolution {result.resolution} after {result.iterations} iterations "
            f"({result.estimate:,} track candidates)"
        )
        return final_grid, single_block_plan(final_grid, estimator, track_estimate=result.estimate)

    def _get_engine(self) -> IDenseReconstructionEngine:
        if self.engine is None:
            from .engines.surface_engine import PointCloudSurfaceEngine
            self.engine = PointCloudSurfaceEngine(
                method=self.config.surface_method,
                neighbour_cams=self.config.neighbour_cams,
                min_cams_per_vertex=self.config.min_cams_per_vertex,
            )
        return self.engine

    def _stage_done(self, stage: str, stage_start: float):
        elapsed = time.time() - stage_start
        self.stats['processing_time'][stage] = elapsed
        self.logger.info(f"✓ {stage.capitalize()} completed in {elapsed:.2f}s")
